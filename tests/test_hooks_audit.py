from sqlalchemy import create_engine

from app.core.audit import AuditLogger
from app.services.hooks import PostCommitHooks


def test_hooks_run_in_order_and_clear():
    calls = []
    hooks = PostCommitHooks()
    hooks.add("first", calls.append, 1)
    hooks.add("second", lambda value=None: calls.append(value) or "done", value=2)

    assert len(hooks) == 2
    assert hooks.run() == {"first": None, "second": "done"}
    assert calls == [1, 2]
    assert len(hooks) == 0


def test_failing_hook_does_not_stop_the_rest():
    calls = []

    def broken():
        raise RuntimeError("wallet unreachable")

    hooks = PostCommitHooks()
    hooks.add("wallet", broken)
    hooks.add("audit", lambda: calls.append("audit") or True)

    assert hooks.run() == {"wallet": None, "audit": True}
    assert calls == ["audit"]


def test_audit_record_and_list(audit, qa_user):
    audit.record(
        "batch.submitted", actor_id=qa_user.id, role="QA",
        entity_type="BATCH", entity_id="b-1", details={"productType": "Cardamom"})
    audit.record("verification.performed", entity_type="CREDENTIAL", entity_id="c-1")

    entries = audit.list_recent()
    assert [e.action for e in entries] == ["verification.performed", "batch.submitted"]
    assert entries[0].role == "SYSTEM"
    assert entries[1].details == {"productType": "Cardamom"}


def test_audit_failure_returns_none(tmp_path):
    # Tables were never created on this engine
    broken = AuditLogger(create_engine(f"sqlite:///{tmp_path / 'empty.db'}"))

    assert broken.record("credential.issued", entity_id="c-1") is None
