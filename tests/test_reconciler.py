from __future__ import annotations

from conftest import StubOracle

from erpforge.core.ai.models import ColumnMatch, TargetField
from erpforge.core.ingest import ingest_records
from erpforge.core.reconcile.reconciler import ColumnReconciler, apply_matches
from erpforge.core.reconcile.synonyms import load_synonym_overrides, load_synonyms


def _targets(*pairs):
    return [TargetField(name=n, label=l) for n, l in pairs]


TARGETS = _targets(("name", "이름"), ("email", "이메일"), ("phone", "전화번호"), ("department", "부서"))


def test_exact_names_match_without_oracle():
    oracle = StubOracle()
    matches = ColumnReconciler(oracle).reconcile(["name", "EMAIL ", "phone"], TARGETS)

    assert {(m.source_label, m.target_field, m.confidence) for m in matches} == {
        ("name", "name", 1.0),
        ("EMAIL ", "email", 1.0),
        ("phone", "phone", 1.0),
    }
    assert oracle.match_calls == []


def test_exact_label_beats_substring_on_earlier_target():
    targets = _targets(("title", "이름 메모"), ("name", "이름"))
    m = ColumnReconciler().rule_match("이름", targets)
    assert (m.target_field, m.confidence) == ("name", 1.0)


def test_synonym_and_substring_confidences():
    r = ColumnReconciler()
    assert r.rule_match("성명", TARGETS).confidence == 0.9
    assert r.rule_match("고객 연락처", TARGETS).target_field == "phone"
    m = r.rule_match("work_email_address", TARGETS)
    assert (m.target_field, m.confidence) in {("email", 0.9), ("email", 0.8)}

    sub = r.rule_match("email", _targets(("contact_email", "연락 메일주소")))
    assert (sub.target_field, sub.confidence) == ("contact_email", 0.8)


def test_oracle_sees_only_unmatched_labels():
    oracle = StubOracle(matches=[ColumnMatch(source_label="Q7", target_field="department", confidence=0.85)])

    matches = ColumnReconciler(oracle).reconcile(["name", "Q7"], TARGETS)

    assert oracle.match_calls == [["Q7"]]
    assert ("Q7", "department") in {(m.source_label, m.target_field) for m in matches}


def test_oracle_failure_keeps_rule_matches():
    oracle = StubOracle(fail=RuntimeError("model down"))
    matches = ColumnReconciler(oracle).reconcile(["name", "zzz"], TARGETS)

    assert [(m.source_label, m.target_field) for m in matches] == [("name", "name")]
    assert oracle.match_calls == [["zzz"]]


def test_low_confidence_ai_matches_never_come_out():
    oracle = StubOracle(matches=[ColumnMatch(source="zzz", target="name", confidence=0.5)])
    matches = ColumnReconciler(oracle).reconcile(["zzz"], TARGETS)
    assert matches == []


def test_blank_labels_are_ignored():
    oracle = StubOracle()
    assert ColumnReconciler(oracle).reconcile(["", "  "], TARGETS) == []
    assert oracle.match_calls == []


class _RecordingMatcher:
    def __init__(self):
        self.targets = []

    def match_columns(self, unmatched, targets):
        self.targets.append([t.name for t in targets])
        return []


def test_generated_field_names_match_exactly_without_oracle(users):
    oracle = StubOracle()
    matches = ColumnReconciler(oracle).reconcile(["id", "name", "createdAt"], users.schema)

    assert [(m.source_label, m.target_field, m.confidence) for m in matches] == [
        ("id", "id", 1.0),
        ("name", "name", 1.0),
        ("createdAt", "createdAt", 1.0),
    ]
    assert oracle.match_calls == []


def test_generated_fields_take_no_part_in_fuzzy_or_ai_matching(users):
    matcher = _RecordingMatcher()
    matches = ColumnReconciler(matcher).reconcile(["valid", "Created"], users.schema)

    assert matches == []
    assert matcher.targets == [["name", "email", "phone", "age", "status"]]


def test_apply_matches_first_match_per_target_wins():
    matches = [
        ColumnMatch(source="성명", target="name", confidence=0.9),
        ColumnMatch(source="이름", target="name", confidence=1.0),
        ColumnMatch(source="메일", target="email", confidence=0.9),
        ColumnMatch(source="기타", target="phone", confidence=0.6),
    ]
    out = apply_matches([{"성명": "Kim", "이름": "Other", "메일": "k@x.io", "기타": "1"}, {"이름": "only"}], matches)

    assert out == [{"name": "Kim", "email": "k@x.io"}, {}]


def test_synonym_overrides_from_yaml_and_json(tmp_path):
    y = tmp_path / "syn.yaml"
    y.write_text("sku:\n  - 품번\n  - item code\nname: 닉네임\n", encoding="utf-8")
    j = tmp_path / "syn.json"
    j.write_text('{"sku": ["part no"]}', encoding="utf-8")

    assert load_synonym_overrides(y) == {"sku": ["품번", "item code"], "name": ["닉네임"]}
    assert load_synonym_overrides(j) == {"sku": ["part no"]}

    merged = load_synonyms(y)
    assert "닉네임" in merged["name"] and "성명" in merged["name"]
    r = ColumnReconciler(synonyms=merged)
    assert r.rule_match("품번", _targets(("sku", "SKU"))).confidence == 0.9


def test_bad_synonym_file_is_ignored(tmp_path):
    bad = tmp_path / "bad.yaml"
    bad.write_text("- just\n- a list\n", encoding="utf-8")
    assert load_synonym_overrides(bad) == {}
    assert load_synonym_overrides(tmp_path / "missing.yaml") == {}


def test_ingest_records_end_to_end(store, users):
    records = [
        {"성명": "Kim", "이메일": "kim@example.com", "비고": "x"},
        {"성명": "Lee", "이메일": "bad"},
    ]
    out = ingest_records(store, ColumnReconciler(), users.id, records)

    assert out["inserted"] == 2
    assert out["failed"] == 0
    rows = store.query(users.id)
    assert {r["name"] for r in rows} == {"Kim", "Lee"}
    assert all("비고" not in r for r in rows)


def test_ingest_records_uses_every_column_not_just_the_first_row(store, users):
    records = [
        {"이름": "Kim", "전화번호": "010-1"},
        {"이름": "Lee", "이메일": "lee@example.com", "전화번호": "010-2"},
    ]
    out = ingest_records(store, ColumnReconciler(), users.id, records)

    assert {m.target_field for m in out["matches"]} == {"name", "email", "phone"}
    lee = store.query(users.id, {"name": "Lee"})[0]
    assert lee["email"] == "lee@example.com"


def test_ingest_records_with_header_labels(store, users):
    oracle = StubOracle()
    records = [{"이름": "Kim"}, {"이름": "Lee", "메모": "x"}]
    out = ingest_records(store, ColumnReconciler(oracle), users.id, records, labels=["이름", "이메일", "메모"])

    assert [(m.source_label, m.target_field) for m in out["matches"]] == [("이름", "name"), ("이메일", "email")]
    assert oracle.match_calls == [["메모"]]


def test_ingest_records_keeps_ids_of_reimported_rows(store, users):
    records = [{"id": "u-9", "이름": "Kim", "createdAt": "2020-01-01"}]
    out = ingest_records(store, ColumnReconciler(StubOracle()), users.id, records)

    assert out["inserted"] == 1
    row = store.find_by_id(users.id, "u-9")
    assert row["name"] == "Kim"
    assert row["createdAt"] != "2020-01-01"
