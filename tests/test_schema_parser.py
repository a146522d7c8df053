from modernization_dashboard.services.models import Relationship
from modernization_dashboard.services.schema_parser import analyze_schema, parse_schema

SHOP_DDL = """
CREATE TABLE customers (
    customer_id SERIAL PRIMARY KEY,
    email VARCHAR(255) NOT NULL UNIQUE,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE orders (
    order_id SERIAL PRIMARY KEY,
    note TEXT,
    total NUMERIC(10, 2) NOT NULL,
    customer_id INT NOT NULL,
    FOREIGN KEY (customer_id) REFERENCES customers(customer_id)
);
"""


def test_parse_schema_single_table_flags() -> None:
    schema = parse_schema("CREATE TABLE t (a INT PRIMARY KEY, b VARCHAR(10) NOT NULL);")

    assert [table.name for table in schema.tables] == ["t"]
    first, second = schema.tables[0].columns
    assert (first.name, first.type, first.is_primary, first.is_not_null) == ("a", "INT", True, False)
    assert (second.name, second.type, second.is_primary, second.is_not_null) == (
        "b",
        "VARCHAR(10)",
        False,
        True,
    )


def test_parse_schema_is_deterministic() -> None:
    assert parse_schema(SHOP_DDL) == parse_schema(SHOP_DDL)


def test_parse_schema_foreign_key_after_other_columns() -> None:
    schema = parse_schema(SHOP_DDL)

    orders = schema.table("orders")
    assert orders is not None
    assert orders.relationships == (
        Relationship(from_column="customer_id", to_table="customers", to_column="customer_id"),
    )
    assert orders.relationships[0].to_table == schema.tables[0].name
    assert schema.dangling_relationships() == []


def test_parse_schema_keeps_type_arguments_and_independent_flags() -> None:
    schema = parse_schema(SHOP_DDL)

    customers = schema.table("customers")
    email = customers.column("email")
    assert email.type == "VARCHAR(255)"
    assert email.is_not_null and email.is_unique and not email.is_primary
    assert customers.column("created_at").has_default
    assert schema.table("orders").column("total").type == "NUMERIC(10,2)"
    assert schema.column_count == 7
    assert schema.relationship_count == 1


def test_parse_schema_empty_and_unrecognized_text() -> None:
    assert parse_schema("").tables == ()
    assert parse_schema(None).tables == ()
    assert parse_schema("SELECT * FROM customers;").tables == ()


def test_parse_schema_table_level_keys_and_skipped_constraints() -> None:
    ddl = """
    CREATE TABLE IF NOT EXISTS public.order_lines (
        order_id INT,
        line_no INT,
        sku VARCHAR(20),
        qty INT CHECK (qty > 0),
        CONSTRAINT pk_order_lines PRIMARY KEY (order_id, line_no),
        UNIQUE (sku),
        CHECK (line_no > 0)
    );
    """
    schema = parse_schema(ddl)

    table = schema.tables[0]
    assert table.name == "public.order_lines"
    assert [column.name for column in table.columns] == ["order_id", "line_no", "sku", "qty"]
    assert table.column("order_id").is_primary
    assert table.column("line_no").is_primary
    assert table.column("sku").is_unique
    assert not table.column("qty").is_primary


def test_parse_schema_inline_and_composite_references() -> None:
    ddl = """
    CREATE TABLE shipments (
        shipment_id INT PRIMARY KEY,
        carrier_id INT REFERENCES carriers,
        order_id INT,
        line_no INT,
        CONSTRAINT fk_line FOREIGN KEY (order_id, line_no) REFERENCES order_lines (order_id, line_no)
    );
    """
    table = parse_schema(ddl).tables[0]

    assert table.relationships == (
        Relationship(from_column="carrier_id", to_table="carriers", to_column="id"),
        Relationship(from_column="order_id", to_table="order_lines", to_column="order_id"),
        Relationship(from_column="line_no", to_table="order_lines", to_column="line_no"),
    )


def test_parse_schema_reports_dangling_relationships() -> None:
    schema = parse_schema(
        "CREATE TABLE orders (id INT, customer_id INT, FOREIGN KEY (customer_id) REFERENCES customers(id));"
    )

    dangling = schema.dangling_relationships()
    assert len(dangling) == 1
    assert dangling[0][0] == "orders"
    assert dangling[0][1].to_table == "customers"


def test_parse_schema_keeps_duplicate_tables_and_lookup_is_last_wins() -> None:
    schema = parse_schema("CREATE TABLE t (a INT); CREATE TABLE t (b INT, c INT);")

    assert len(schema.tables) == 2
    assert [column.name for column in schema.table("t").columns] == ["b", "c"]


def test_parse_schema_column_named_like_keyword() -> None:
    table = parse_schema('CREATE TABLE settings (key VARCHAR(20) NOT NULL, "order" INT);').tables[0]

    assert [column.name for column in table.columns] == ["key", "order"]
    assert table.column("key").type == "VARCHAR(20)"


def test_analyze_schema_falls_back_when_tokenizer_rejects_text() -> None:
    result = analyze_schema("CREATE TABLE t (a INT DEFAULT 'x, b INT NOT NULL);")

    assert result["errors"]
    assert result["errors"][0].startswith("tokenize_error:")
    table = result["schema"].tables[0]
    assert table.name == "t"
    assert [column.name for column in table.columns] == ["a", "b"]
    assert table.column("a").has_default
    assert table.column("b").is_not_null


def test_parse_schema_inline_constraint_keeps_column() -> None:
    ddl = "CREATE TABLE orders (id INT, customer_id INT CONSTRAINT fk_c REFERENCES customers(id));"
    table = parse_schema(ddl).tables[0]

    assert [column.name for column in table.columns] == ["id", "customer_id"]
    assert table.relationships == (Relationship(from_column="customer_id", to_table="customers", to_column="id"),)


def test_analyze_schema_fallback_keeps_inline_constraint_column() -> None:
    ddl = "CREATE TABLE orders (customer_id INT CONSTRAINT fk_c REFERENCES customers(id), note TEXT DEFAULT 'x);"
    result = analyze_schema(ddl)

    assert result["errors"][0].startswith("tokenize_error:")
    table = result["schema"].tables[0]
    assert [column.name for column in table.columns] == ["customer_id", "note"]
    assert table.relationships == (Relationship(from_column="customer_id", to_table="customers", to_column="id"),)


def test_analyze_schema_backticks_under_postgres_use_fallback() -> None:
    result = analyze_schema("CREATE TABLE `m` (`id` INT PRIMARY KEY, `unknown` TEXT);", "postgres")

    assert result["errors"]
    assert result["errors"][0].startswith("tokenize_error:")
    table = result["schema"].tables[0]
    assert table.name == "m"
    assert [column.name for column in table.columns] == ["id", "unknown"]
    assert table.column("id").is_primary


def test_parse_schema_column_named_unknown_is_not_an_error() -> None:
    result = analyze_schema("CREATE TABLE flags (unknown BOOLEAN NOT NULL);")

    assert result["errors"] == []
    assert [column.name for column in result["schema"].tables[0].columns] == ["unknown"]
