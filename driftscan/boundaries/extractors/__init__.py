"""Data-access extractor registry.

Every extractor registered for a file's language runs, then the generic
``"table.field"`` accessor and raw-SQL extractors run for every language.
Results are unioned; two access points on the same line and table collapse
to the one with the highest confidence.
"""

from driftscan.ast_extractors.grammar import GrammarProbe
from driftscan.boundaries.extractors.base import BaseDataAccessExtractor, detect_operation
from driftscan.boundaries.extractors.csharp_orm import EntityFrameworkExtractor
from driftscan.boundaries.extractors.generic import GenericAccessorExtractor
from driftscan.boundaries.extractors.java_orm import JpaExtractor
from driftscan.boundaries.extractors.php_orm import DoctrineExtractor, EloquentExtractor
from driftscan.boundaries.extractors.python_orm import DjangoExtractor, SqlAlchemyExtractor
from driftscan.boundaries.extractors.raw_sql import RawSqlExtractor, parse_sql
from driftscan.boundaries.extractors.syntax import SyntaxIndex, build_syntax_index
from driftscan.boundaries.extractors.typescript_orm import (
    PrismaExtractor,
    QueryBuilderExtractor,
    SequelizeExtractor,
    TypeOrmExtractor,
)
from driftscan.boundaries.types import DataAccessExtraction, DataAccessPoint, ExtractedField, OrmModel
from driftscan.utils.logging import logger

_JS_EXTRACTORS = (PrismaExtractor(), TypeOrmExtractor(), SequelizeExtractor(), QueryBuilderExtractor())

DATA_ACCESS_EXTRACTORS: dict[str, tuple[BaseDataAccessExtractor, ...]] = {
    "python": (DjangoExtractor(), SqlAlchemyExtractor()),
    "typescript": _JS_EXTRACTORS,
    "javascript": _JS_EXTRACTORS,
    "java": (JpaExtractor(),),
    "csharp": (EntityFrameworkExtractor(),),
    "php": (EloquentExtractor(), DoctrineExtractor()),
}

# Language-agnostic; always run after the framework extractors
UNIVERSAL_EXTRACTORS = (GenericAccessorExtractor(), RawSqlExtractor())


def get_extractors(language: str) -> list[BaseDataAccessExtractor]:
    return [*DATA_ACCESS_EXTRACTORS.get(language, ()), *UNIVERSAL_EXTRACTORS]


def extract_data_access(source: str, file_path: str, language: str,
                        probe: GrammarProbe | None = None) -> DataAccessExtraction:
    """Run every applicable extractor on one file and merge their results.

    The file is parsed at most once; its SyntaxIndex is shared by every
    extractor that confirms its sites against one.

    Never raises: an extractor that fails on this file is recorded in
    ``errors`` and the others still contribute.
    """
    merged = DataAccessExtraction(file=file_path, language=language)
    points: dict[tuple[int, str], DataAccessPoint] = {}
    fields: dict[tuple[str, str], ExtractedField] = {}
    models: dict[str, OrmModel] = {}
    extractors = get_extractors(language)
    index = None
    if any(e.uses_syntax_index for e in extractors):
        index = build_syntax_index(source, file_path, language, probe)

    for extractor in extractors:
        try:
            if extractor in UNIVERSAL_EXTRACTORS:
                result = extractor.extract(source, file_path, language)
            elif extractor.uses_syntax_index:
                result = extractor.extract(source, file_path, index=index)
            else:
                result = extractor.extract(source, file_path)
        except (ValueError, IndexError, KeyError, RecursionError) as e:
            logger.warning(f"[EXTRACT] {extractor.framework} extractor failed on {file_path}: {e}")
            merged.errors.append(f"{extractor.framework}: {e}")
            continue

        merged.errors.extend(result.errors)
        for point in result.access_points:
            key = (point.line, point.table)
            current = points.get(key)
            if current is None or point.confidence > current.confidence:
                points[key] = point
        for field in result.fields:
            key = (field.table, field.name)
            current = fields.get(key)
            if current is None or (field.marker_tier and not current.marker_tier):
                fields[key] = field
        for model in result.models:
            current = models.get(model.name)
            if current is None or (model.explicit_table and not current.explicit_table):
                if current is not None and not model.fields:
                    model.fields = list(current.fields)
                models[model.name] = model

    merged.access_points = sorted(points.values(), key=lambda p: (p.line, p.column, p.table))
    merged.fields = sorted(fields.values(), key=lambda f: (f.line, f.table, f.name))
    merged.models = sorted(models.values(), key=lambda m: (m.line, m.name))
    return merged


__all__ = [
    "BaseDataAccessExtractor",
    "DATA_ACCESS_EXTRACTORS",
    "UNIVERSAL_EXTRACTORS",
    "extract_data_access",
    "get_extractors",
    "detect_operation",
    "parse_sql",
    "SyntaxIndex",
    "build_syntax_index",
]
