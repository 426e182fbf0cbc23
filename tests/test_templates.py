import csv

from field_specs import TABLE_SPECS
from seed import TEMPLATE_SPECS, ensure_templates


def test_generated_template_headers_match_table_specs(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    written = ensure_templates()

    assert len(written) == len(TEMPLATE_SPECS)
    for table_key, filename in TEMPLATE_SPECS:
        template_path = tmp_path / "templates" / filename
        assert template_path.exists(), f"missing template for {table_key}: {filename}"

        with template_path.open(newline="", encoding="utf-8") as handle:
            reader = csv.reader(handle)
            header = next(reader)
            sample = next(reader)

        assert header == list(TABLE_SPECS[table_key].keys())
        assert sample == [spec.example for spec in TABLE_SPECS[table_key].values()]


def test_templates_into_custom_dir(tmp_path):
    target = tmp_path / "exports"

    written = ensure_templates(target)

    assert {p.name for p in written} == {name for _, name in TEMPLATE_SPECS}
    assert all(p.parent == target for p in written)
