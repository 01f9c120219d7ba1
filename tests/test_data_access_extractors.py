"""Tests for the data-access extractors, one framework at a time."""

import pytest

from driftscan.ast_extractors.grammar import GrammarProbe
from driftscan.boundaries.extractors import build_syntax_index, extract_data_access, get_extractors, parse_sql
from driftscan.boundaries.extractors.base import GENERIC_CONFIDENCE, ORM_CONFIDENCE, detect_operation
from driftscan.boundaries.extractors.csharp_orm import EntityFrameworkExtractor
from driftscan.boundaries.extractors.generic import GenericAccessorExtractor
from driftscan.boundaries.extractors.java_orm import JpaExtractor
from driftscan.boundaries.extractors.php_orm import EloquentExtractor
from driftscan.boundaries.extractors.python_orm import DjangoExtractor, SqlAlchemyExtractor
from driftscan.boundaries.extractors.raw_sql import RAW_SQL_CONFIDENCE, RawSqlExtractor
from driftscan.boundaries.extractors.typescript_orm import PrismaExtractor, QueryBuilderExtractor, TypeOrmExtractor
from driftscan.boundaries.sensitivity import classify_name, find_marker, marker_in_text
from driftscan.boundaries.table_names import default_table_name

DJANGO_SOURCE = '''\
from django.db import models


class Patient(models.Model):
    # @sensitivity: restricted
    ssn = models.CharField(max_length=11)
    name = models.CharField(max_length=100)

    class Meta:
        db_table = "clinic_patients"


def export():
    return Patient.objects.filter(active=True).values("ssn", "name")


def register(data):
    Patient.objects.create(ssn=data["ssn"], name=data["name"])


def purge():
    Patient.objects.filter(active=False).delete()
'''

SQLALCHEMY_SOURCE = '''\
from sqlalchemy import Column, Integer, String, select
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Account(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)
    iban = Column(String)


def balances(session):
    return session.query(Account.iban).all()


def open_account(session, iban):
    session.add(Account(iban=iban))


def lookup():
    return select(Account.iban).where(Account.id == 1)
'''

PRISMA_SOURCE = '''\
export async function listUsers() {
  return prisma.user.findMany({ select: { email: true, ssn: true } });
}

export async function addUser(input) {
  return prisma.user.create({ data: { email: input.email, name: input.name } });
}

export async function removeUser(id) {
  await prisma.user.delete({ where: { id } });
}
'''

TYPEORM_SOURCE = '''\
@Entity("customers")
export class Customer {
  @PrimaryGeneratedColumn()
  id: number;

  // @sensitivity: restricted
  @Column()
  taxId: string;
}

export class CustomerService {
  constructor(private customerRepository: Repository<Customer>) {}

  find(id: number) {
    return this.customerRepository.findOne({ where: { id }, select: ["taxId"] });
  }
}
'''

JPA_SOURCE = '''\
@Entity
@Table(name = "patients")
public class Patient {
    @Id
    private Long id;

    @Sensitive("restricted")
    @Column(name = "diagnosis_code")
    private String diagnosis;
}

interface PatientRepository extends JpaRepository<Patient, Long> {}

class PatientService {
    private final PatientRepository patientRepository;

    List<Patient> all() {
        return patientRepository.findAll();
    }

    void discharge(Patient p) {
        patientRepository.delete(p);
    }
}
'''

EF_SOURCE = '''\
public class AppDbContext : DbContext
{
    public DbSet<Customer> Customers { get; set; }
}

public class Customer
{
    public int Id { get; set; }

    [ProtectedPersonalData]
    public string TaxNumber { get; set; }
}

public class CustomerService
{
    private readonly AppDbContext _context;

    public List<string> TaxNumbers()
    {
        return _context.Customers.Where(c => c.Id > 0).Select(c => c.TaxNumber).ToList();
    }
}
'''

ELOQUENT_SOURCE = '''\
<?php

class Customer extends Model
{
    protected $table = 'clients';

    protected $hidden = ['password', 'ssn'];
}

class CustomerController
{
    public function index()
    {
        return Customer::where('active', 1)->pluck('email');
    }

    public function store($request)
    {
        Customer::create(['email' => $request->email, 'ssn' => $request->ssn]);
    }
}
'''


def _by_operation(points):
    return {p.operation: p for p in points}


class TestOperationDetection:
    @pytest.mark.parametrize("method,operation", [
        ("findMany", "read"),
        ("values_list", "read"),
        ("bulk_create", "write"),
        ("SaveChangesAsync", "write"),
        ("destroy", "delete"),
        ("fetchProfile", "read"),
        ("storeInvoice", "write"),
        ("removeSession", "delete"),
        ("render", None),
    ])
    def test_method_names(self, method, operation):
        """Exact method names first, then verb prefixes."""
        assert detect_operation(method) == operation

    def test_prefixes_can_be_disabled(self):
        """Framework extractors only trust exact method names."""
        assert detect_operation("fetchProfile", use_prefixes=False) is None


class TestDjangoExtractor:
    """Model.objects chains."""

    def test_model_and_fields(self):
        """Meta.db_table names the table and markers attach to fields."""
        result = DjangoExtractor().extract(DJANGO_SOURCE, "clinic/models.py")
        assert [(m.name, m.table, m.explicit_table) for m in result.models] == [("Patient", "clinic_patients", True)]
        fields = {f.name: f for f in result.fields}
        assert set(fields) == {"ssn", "name"}
        assert fields["ssn"].marker_tier == "restricted"
        assert fields["name"].marker_tier is None

    def test_access_sites(self):
        """Projections and write kwargs become fields; the strongest chained operation wins."""
        result = DjangoExtractor().extract(DJANGO_SOURCE, "clinic/models.py")
        points = _by_operation(result.access_points)
        assert set(points) == {"read", "write", "delete"}, f"Unexpected operations: {list(points)}"
        assert points["read"].fields == ["name", "ssn"]
        assert points["write"].fields == ["name", "ssn"]
        assert points["delete"].is_whole_row
        assert all(p.table == "clinic_patients" for p in result.access_points)
        assert all(p.confidence == ORM_CONFIDENCE for p in result.access_points)

    def test_unparseable_source_is_recorded(self):
        """Syntax errors are reported as extraction errors, not raised."""
        result = DjangoExtractor().extract("def broken(:\n", "bad.py")
        assert result.access_points == []
        assert result.errors and "unparseable" in result.errors[0]


class TestSqlAlchemyExtractor:
    def test_declarative_model(self):
        """__tablename__ and Column attributes define the model."""
        result = SqlAlchemyExtractor().extract(SQLALCHEMY_SOURCE, "bank/models.py")
        assert [(m.name, m.table) for m in result.models] == [("Account", "accounts")]
        assert [f.name for f in result.fields] == ["id", "iban"]

    def test_session_and_select_sites(self):
        """session.query, session.add and select() each yield one site."""
        result = SqlAlchemyExtractor().extract(SQLALCHEMY_SOURCE, "bank/models.py")
        summary = [(p.operation, p.table, p.fields) for p in result.access_points]
        assert summary == [
            ("read", "accounts", ["iban"]),
            ("write", "accounts", ["iban"]),
            ("read", "accounts", ["iban"]),
        ], summary


class TestTypeScriptExtractors:
    """Prisma, TypeORM and query builders."""

    def test_prisma_delegates(self):
        """The delegate names the model; select and data keys name fields."""
        result = PrismaExtractor().extract(PRISMA_SOURCE, "src/users.ts")
        points = _by_operation(result.access_points)
        assert {p.table for p in result.access_points} == {"users"}
        assert points["read"].fields == ["email", "ssn"]
        assert points["write"].fields == ["email", "name"]
        assert points["delete"].is_whole_row
        assert points["read"].model == "User"

    def test_typeorm_entity_and_repository(self):
        """@Entity names the table and repository calls resolve to it."""
        result = TypeOrmExtractor().extract(TYPEORM_SOURCE, "src/customer.ts")
        assert [(m.name, m.table) for m in result.models] == [("Customer", "customers")]
        fields = {f.name: f for f in result.fields}
        assert fields["taxId"].marker_tier == "restricted"
        assert len(result.access_points) == 1
        point = result.access_points[0]
        assert (point.table, point.operation, point.fields) == ("customers", "read", ["taxId"])
        assert point.confidence == ORM_CONFIDENCE

    def test_knex_and_supabase(self):
        """Builder roots name the table; chained select names the columns."""
        source = (
            'export const emails = () => knex("users").select("email").where({ active: true });\n'
            "\n"
            'export const phones = () => supabase.from("profiles").select("email, phone_number");\n'
        )
        result = QueryBuilderExtractor().extract(source, "src/queries.ts")
        by_table = {p.table: p for p in result.access_points}
        assert by_table["users"].fields == ["email"]
        assert by_table["users"].framework == "knex"
        assert by_table["profiles"].fields == ["email", "phone_number"]
        assert by_table["profiles"].framework == "supabase"


class TestJvmAndDotNetExtractors:
    def test_jpa_entity(self):
        """@Table and @Column names override class and field names."""
        result = JpaExtractor().extract(JPA_SOURCE, "src/Patient.java")
        assert [(m.name, m.table) for m in result.models] == [("Patient", "patients")]
        fields = {f.name: f for f in result.fields}
        assert set(fields) == {"id", "diagnosis_code"}
        assert fields["diagnosis_code"].marker_tier == "restricted"

    def test_spring_repository_calls(self):
        """Repository interfaces map calls onto their entity's table."""
        result = JpaExtractor().extract(JPA_SOURCE, "src/Patient.java")
        summary = sorted((p.operation, p.table) for p in result.access_points)
        assert summary == [("delete", "patients"), ("read", "patients")], summary

    def test_entity_framework(self):
        """DbSet property names are tables; LINQ Select projects a column."""
        result = EntityFrameworkExtractor().extract(EF_SOURCE, "Data/Customers.cs")
        fields = {f.name: f for f in result.fields}
        assert fields["TaxNumber"].marker_tier == "restricted"
        assert len(result.access_points) == 1
        point = result.access_points[0]
        assert (point.table, point.operation, point.fields) == ("Customers", "read", ["TaxNumber"])
        assert point.model == "Customer"


class TestEloquentExtractor:
    def test_model_arrays_and_static_calls(self):
        """$table renames the model; $hidden lists fields; static calls are sites."""
        result = EloquentExtractor().extract(ELOQUENT_SOURCE, "app/Customer.php")
        assert [(m.name, m.table) for m in result.models] == [("Customer", "clients")]
        assert [f.name for f in result.fields] == ["password", "ssn"]
        points = _by_operation(result.access_points)
        assert points["read"].fields == ["email"]
        assert points["write"].fields == ["email", "ssn"]
        assert {p.table for p in result.access_points} == {"clients"}


class TestRawSql:
    """Embedded SQL parsed with sqlparse."""

    def test_select_columns(self):
        assert parse_sql("SELECT email, ssn FROM users WHERE id = 1") == [("read", {"users": ["email", "ssn"]})]

    def test_insert_columns(self):
        """INSERT column lists are the written fields."""
        assert parse_sql("INSERT INTO users (email, ssn) VALUES (%s, %s)") == [("write", {"users": ["email", "ssn"]})]

    def test_delete_touches_whole_row(self):
        assert parse_sql("DELETE FROM orders WHERE id = 7") == [("delete", {"orders": ["*"]})]

    def test_star_select(self):
        """SELECT * reads the whole row."""
        assert parse_sql("SELECT * FROM invoices") == [("read", {"invoices": ["*"]})]

    def test_string_literals_in_source(self):
        """SQL-shaped literals become raw-sql access points; dynamic tables are skipped."""
        source = (
            "def load(cursor, table):\n"
            "    cursor.execute(\"SELECT email, ssn FROM users WHERE id = %s\")\n"
            "    cursor.execute(f\"SELECT * FROM {table}\")\n"
            "    return 'select a flavour from the menu'\n"
        )
        result = RawSqlExtractor().extract(source, "app/raw.py", "python")
        assert len(result.access_points) == 1, [p.table for p in result.access_points]
        point = result.access_points[0]
        assert point.is_raw_sql
        assert (point.line, point.table, point.fields) == (2, "users", ["email", "ssn"])
        assert point.confidence == RAW_SQL_CONFIDENCE


class TestGenericAccessor:
    def test_table_field_strings(self):
        """db.readField("users.ssn") reads users.ssn."""
        result = GenericAccessorExtractor().extract('x = db.readField("users.ssn")\n', "a.py", "python")
        assert len(result.access_points) == 1
        point = result.access_points[0]
        assert (point.table, point.fields, point.operation) == ("users", ["ssn"], "read")
        assert point.confidence == GENERIC_CONFIDENCE

    def test_non_access_strings_ignored(self):
        """File names, non-access calls and common-word tables are not sites."""
        source = (
            'cfg = loader.load("settings.json")\n'
            'name = config.get("app.name")\n'
            'print("users.ssn")\n'
        )
        result = GenericAccessorExtractor().extract(source, "a.py", "python")
        assert result.access_points == [], [(p.table, p.fields) for p in result.access_points]


class TestRegistry:
    """extract_data_access unions every applicable extractor."""

    def test_universal_extractors_always_run(self):
        frameworks = [e.framework for e in get_extractors("php")]
        assert frameworks[-2:] == ["generic", "raw-sql"]
        assert [e.framework for e in get_extractors("cobol")] == ["generic", "raw-sql"]

    def test_same_line_keeps_highest_confidence(self):
        """Two extractors reporting the same line and table collapse to the more confident one."""
        source = 'def f(db, store):\n    return store.get("users.ssn") or db.execute("SELECT email FROM users")\n'
        result = extract_data_access(source, "app/dual.py", "python")
        users = [p for p in result.access_points if p.table == "users"]
        assert len(users) == 1, f"Expected one merged point, got {[(p.framework, p.line) for p in users]}"
        assert users[0].framework == "raw-sql"
        assert users[0].confidence == RAW_SQL_CONFIDENCE

    def test_merged_results_are_sorted(self):
        result = extract_data_access(DJANGO_SOURCE, "clinic/models.py", "python")
        lines = [p.line for p in result.access_points]
        assert lines == sorted(lines)
        assert [m.name for m in result.models] == ["Patient"]


class TestSensitivityMarkers:
    @pytest.mark.parametrize("text,tier", [
        ("# @sensitivity: restricted", "restricted"),
        ("// @sensitivity internal", "internal"),
        ('ssn = Column(String, info={"sensitivity": "restricted"})', "restricted"),
        ('@Sensitive("confidential")', "confidential"),
        ("@Sensitive(Tier.RESTRICTED)", "restricted"),
        ("[PersonalData]", "confidential"),
        ("[ProtectedPersonalData]", "restricted"),
        ("#[Sensitive('restricted')]", "restricted"),
        ("* @sensitive secret", "restricted"),
    ])
    def test_marker_forms(self, text, tier):
        """Every supported marker syntax yields its canonical tier."""
        found = marker_in_text(text)
        assert found is not None, f"No marker found in {text!r}"
        assert found[0] == tier

    def test_marker_search_stops_at_code(self):
        """A marker above an unrelated code line does not attach."""
        lines = ["# @sensitivity: restricted", "other = 1", "ssn = models.CharField()"]
        assert find_marker(lines, 2) is None
        assert find_marker(["# @sensitivity: restricted", "ssn = models.CharField()"], 1)[0] == "restricted"

    def test_name_categories(self):
        """Categories explain why a name looks sensitive; noise columns have none."""
        assert classify_name("ssn")[0] == "pii"
        assert classify_name("diagnosis")[0] == "health"
        assert classify_name("passwordHash")[0] == "credentials"
        assert "pci-dss" in classify_name("card_number")[1]
        assert classify_name("created_at") is None


class TestTableNames:
    @pytest.mark.parametrize("model,table", [
        ("User", "users"),
        ("OrderItem", "order_items"),
        ("Category", "categories"),
        ("UserRepository", "users"),
        ("Address", "addresses"),
    ])
    def test_default_table_name(self, model, table):
        assert default_table_name(model) == table


# ORM-shaped text that only ever appears inside string literals and comments
STRING_MENTIONS = {
    "typescript": ("src/help.ts", '''\
export function help() {
  console.log("try prisma.user.deleteMany() to reset");
  // knex("users").del() also works
}
'''),
    "java": ("src/Help.java", '''\
class Help {
    void show() {
        System.out.println("call patientRepository.deleteAll() to reset");
    }
}
'''),
    "csharp": ("Help.cs", '''\
public class Help
{
    public void Show()
    {
        Console.WriteLine("use _context.Customers.Where(c => c.Active) to list");
    }
}
'''),
    "php": ("help.php", '''\
<?php

function help()
{
    echo "run Customer::destroy(1) to reset";
}
'''),
}

RESET_SOURCE = '''\
export async function reset() {
  console.log("running prisma.user.deleteMany()");
  await prisma.user.deleteMany();
}
'''


def _grammar_for(language):
    pytest.importorskip("tree_sitter_language_pack")
    probe = GrammarProbe()
    if not probe.is_available(language):
        pytest.skip(f"{language} grammar not available in this environment")
    return probe


class TestCallSitesOnly:
    """Sites come from real calls, never from text inside strings or comments."""

    @pytest.mark.parametrize("language", sorted(STRING_MENTIONS))
    def test_string_mentions_with_grammar(self, language):
        probe = _grammar_for(language)
        path, source = STRING_MENTIONS[language]
        assert build_syntax_index(source, path, language, probe).grammar_backed
        result = extract_data_access(source, path, language, probe)
        assert result.access_points == [], [(p.table, p.operation, p.line) for p in result.access_points]

    @pytest.mark.parametrize("language", sorted(STRING_MENTIONS))
    def test_string_mentions_without_grammar(self, language):
        """The pattern fallback masks string contents the same way."""
        probe = GrammarProbe(disabled={language})
        path, source = STRING_MENTIONS[language]
        assert not build_syntax_index(source, path, language, probe).grammar_backed
        result = extract_data_access(source, path, language, probe)
        assert result.access_points == [], [(p.table, p.operation, p.line) for p in result.access_points]

    @pytest.mark.parametrize("grammar", [True, False])
    def test_real_call_beside_string_mention(self, grammar):
        """Only the awaited call is a site; the logged text on the line above is not."""
        probe = _grammar_for("typescript") if grammar else GrammarProbe(disabled={"typescript"})
        index = build_syntax_index(RESET_SOURCE, "src/reset.ts", "typescript", probe)
        result = PrismaExtractor().extract(RESET_SOURCE, "src/reset.ts", index=index)
        assert [(p.table, p.operation, p.line) for p in result.access_points] == [("users", "delete", 3)]

    def test_offsets_survive_multibyte_text(self):
        """Call offsets stay aligned after non-ASCII characters earlier in the file."""
        probe = _grammar_for("typescript")
        source = 'const greeting = "héllo wörld";\n\nexport const all = () => prisma.user.findMany();\n'
        result = extract_data_access(source, "src/all.ts", "typescript", probe)
        assert [(p.table, p.operation, p.line) for p in result.access_points] == [("users", "read", 3)]
