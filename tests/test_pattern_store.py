"""
Tests for the correction backing stores.

Both implementations run the same contract tests; SQL-specific behaviour
(persistence across instances, column round-trips) is tested separately.
"""
from datetime import datetime, timezone

import pytest

from tagledger.models.corrections import Correction, MatchType, TransactionType
from tagledger.services.errors import WriteConflict
from tagledger.services.pattern_store import InMemoryPatternStore, SQLPatternStore

NOW = datetime(2026, 1, 9, 8, 30, tzinfo=timezone.utc)


def _correction(correction_id="c1", pattern="WOOLWORTHS", match_type=MatchType.CONTAINS, **fields):
    values = {
        "id": correction_id,
        "pattern": pattern,
        "match_type": match_type,
        "tags": ["Groceries"],
        "created_at": NOW,
        "updated_at": NOW,
    }
    values.update(fields)
    return Correction(**values)


@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path, monkeypatch):
    if request.param == "memory":
        return InMemoryPatternStore()
    monkeypatch.delenv("DATABASE_URL", raising=False)
    return SQLPatternStore(db_path=str(tmp_path / "corrections.db"))


class TestStoreContract:

    def test_insert_then_lookup_by_id_and_key(self, store):
        stored = store.put(_correction())

        assert stored.version == 1
        assert store.get("c1") == stored
        assert store.find("WOOLWORTHS", MatchType.CONTAINS) == stored
        assert store.find("WOOLWORTHS", MatchType.EXACT) is None

    def test_find_accepts_plain_string_match_type(self, store):
        store.put(_correction())
        assert store.find("WOOLWORTHS", "contains").id == "c1"

    def test_missing_lookups_return_none(self, store):
        assert store.get("missing") is None
        assert store.find("NOPE", MatchType.EXACT) is None

    def test_duplicate_key_insert_conflicts(self, store):
        store.put(_correction("c1"))
        with pytest.raises(WriteConflict):
            store.put(_correction("c2"))

    def test_duplicate_id_insert_conflicts(self, store):
        store.put(_correction("c1"))
        with pytest.raises(WriteConflict):
            store.put(_correction("c1", pattern="COLES"))

    def test_same_pattern_different_match_type_is_separate(self, store):
        store.put(_correction("c1", match_type=MatchType.CONTAINS))
        store.put(_correction("c2", match_type=MatchType.EXACT))

        assert len(store.scan()) == 2

    def test_compare_and_swap_bumps_version(self, store):
        stored = store.put(_correction())
        updated = store.put(
            stored.model_copy(update={"confidence": 0.6, "times_applied": 1}),
            expected_version=stored.version,
        )

        assert updated.version == 2
        assert store.get("c1").confidence == 0.6
        assert store.get("c1").times_applied == 1

    def test_stale_version_conflicts(self, store):
        stored = store.put(_correction())
        store.put(stored.model_copy(update={"confidence": 0.6}), expected_version=1)

        with pytest.raises(WriteConflict):
            store.put(stored.model_copy(update={"confidence": 0.9}), expected_version=1)
        assert store.get("c1").confidence == 0.6

    def test_update_of_missing_row_conflicts(self, store):
        with pytest.raises(WriteConflict):
            store.put(_correction(), expected_version=1)

    def test_pattern_and_match_type_are_immutable(self, store):
        stored = store.put(_correction())
        updated = store.put(
            stored.model_copy(update={"pattern": "COLES", "match_type": MatchType.EXACT}),
            expected_version=1,
        )

        assert updated.pattern == "WOOLWORTHS"
        assert updated.match_type == MatchType.CONTAINS
        assert store.find("WOOLWORTHS", MatchType.CONTAINS) is not None

    def test_returned_rules_are_detached_from_storage(self, store):
        returned = store.put(_correction(tags=["Groceries"]))
        returned.tags.append("Leaked")
        returned.confidence = 7.0

        fetched = store.get("c1")
        fetched.tags.append("Leaked")
        store.find("WOOLWORTHS", MatchType.CONTAINS).tags.clear()
        store.scan()[0].times_applied = 99

        stored = store.get("c1")
        assert stored.tags == ["Groceries"]
        assert stored.confidence == 0.5
        assert stored.times_applied == 0
        assert stored.version == 1

    def test_input_rule_is_not_aliased(self, store):
        original = _correction(tags=["Groceries"])
        store.put(original)
        original.tags.append("Leaked")

        assert store.get("c1").tags == ["Groceries"]

    def test_scan_with_predicate(self, store):
        store.put(_correction("c1", "COLES", confidence=0.4))
        store.put(_correction("c2", "ALDI", confidence=0.8))

        assert {c.id for c in store.scan()} == {"c1", "c2"}
        assert [c.id for c in store.scan(lambda c: c.confidence >= 0.5)] == ["c2"]

    def test_delete(self, store):
        store.put(_correction())

        assert store.delete("c1") is True
        assert store.get("c1") is None
        assert store.find("WOOLWORTHS", MatchType.CONTAINS) is None
        assert store.delete("c1") is False

    def test_delete_frees_the_key(self, store):
        store.put(_correction("c1"))
        store.delete("c1")
        store.put(_correction("c2"))

        assert store.find("WOOLWORTHS", MatchType.CONTAINS).id == "c2"

    def test_delete_with_stale_version_conflicts(self, store):
        stored = store.put(_correction())
        store.put(stored.model_copy(update={"confidence": 0.7}), expected_version=1)

        with pytest.raises(WriteConflict):
            store.delete("c1", expected_version=1)
        assert store.get("c1") is not None

    def test_delete_with_version_of_missing_row(self, store):
        assert store.delete("missing", expected_version=3) is False

    def test_optional_fields_round_trip(self, store):
        last_used = datetime(2026, 2, 1, 9, 0, tzinfo=timezone.utc)
        store.put(
            _correction(
                tags=["Health", "Government", "Tax Deductible", "Health"],
                entity_id="ent-42",
                entity_name="Medicare",
                location="Sydney",
                online=False,
                transaction_type=TransactionType.INCOME,
                last_used_at=last_used,
            )
        )

        loaded = store.get("c1")
        assert loaded.tags == ["Health", "Government", "Tax Deductible", "Health"]
        assert loaded.entity_id == "ent-42"
        assert loaded.entity_name == "Medicare"
        assert loaded.location == "Sydney"
        assert loaded.online is False
        assert loaded.transaction_type == TransactionType.INCOME
        assert loaded.last_used_at == last_used
        assert loaded.created_at == NOW


class TestSQLPatternStore:

    @pytest.fixture()
    def db_path(self, tmp_path, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        return str(tmp_path / "corrections.db")

    def test_rows_survive_new_store_instance(self, db_path):
        SQLPatternStore(db_path=db_path).put(_correction())

        reopened = SQLPatternStore(db_path=db_path)
        assert reopened.get("c1").pattern == "WOOLWORTHS"

    def test_empty_tags_round_trip(self, db_path):
        store = SQLPatternStore(db_path=db_path)
        store.put(_correction(tags=[]))

        assert store.get("c1").tags == []

    def test_non_postgres_dsn_uses_sqlite(self, db_path):
        store = SQLPatternStore(db_path=db_path, dsn="mysql://somewhere")
        assert store.db.use_postgres is False
