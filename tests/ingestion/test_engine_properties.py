"""
Hypothesis properties of TransformationEngine over in-memory rows.

Properties:
1. Every source row is counted exactly once (valid + invalid == total)
2. Every emitted row has exactly the template's columns, in order
3. Row indexes in errors are unique and within range
4. A required target is never empty in emitted data
"""

from hypothesis import HealthCheck, given, settings, strategies as st

from crm_ingestion import TransformationEngine, build_mapping_config

MAPPING = [
    {"source": "Account Name", "target": "name", "required": True},
    {"source": "HT Account Number", "target": "accountNumber"},
    {"source": "Employees", "target": "employees", "coerce": "number"},
    {"source": "Email", "target": "email", "validate": "email"},
]

ENGINE = TransformationEngine(build_mapping_config(MAPPING, "accounts"))

cell_values = st.one_of(
    st.none(),
    st.text(max_size=12),
    st.integers(min_value=-10_000, max_value=10_000),
    st.sampled_from(["", "  ", "Acme", "jane@acme.com", "1,200", "n/a"]),
)

source_rows = st.lists(
    st.fixed_dictionaries({
        "Account Name": cell_values,
        "HT Account Number": cell_values,
        "Employees": cell_values,
        "Email": cell_values,
    }),
    max_size=25,
)

templates = st.permutations(["id", "name", "accountNumber", "employees", "email", "ownerId"]).flatmap(
    lambda cols: st.integers(min_value=1, max_value=len(cols)).map(lambda n: list(cols[:n]))
)


class TestEngineProperties:
    @given(rows=source_rows, columns=templates)
    @settings(max_examples=100, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_every_row_counted_once(self, rows, columns):
        result = ENGINE.transform_rows(rows, ",".join(columns))
        stats = result.stats
        assert stats.total_rows == len(rows)
        assert stats.valid_rows + stats.invalid_rows == stats.total_rows
        assert len(result.data) == stats.valid_rows
        assert len(result.errors) == stats.invalid_rows

    @given(rows=source_rows, columns=templates)
    @settings(max_examples=100, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_rows_have_template_shape(self, rows, columns):
        result = ENGINE.transform_rows(rows, ",".join(columns))
        assert all(list(row) == columns for row in result.data)
        assert all(isinstance(v, str) for row in result.data for v in row.values())

    @given(rows=source_rows)
    @settings(max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_error_rows_unique_and_in_range(self, rows):
        result = ENGINE.transform_rows(rows, "name")
        indexes = [e.row for e in result.errors]
        assert len(indexes) == len(set(indexes))
        assert all(0 <= i < len(rows) for i in indexes)

    @given(rows=source_rows)
    @settings(max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_required_never_empty(self, rows):
        result = ENGINE.transform_rows(rows, "id,name")
        assert all(row["name"] for row in result.data)
