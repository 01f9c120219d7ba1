"""driftscan - call graph and data boundary analysis across TypeScript, Python, Java, C# and PHP."""

__version__ = "0.4.0"
