"""Tests for the activation store: validation, upsert, disable, bulk."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from tacs.engine.decision import should_emit
from tacs.engine.kinds import GLOBAL_TENANT
from tacs.errors import ActivationNotFoundError, ActivationValidationError
from tacs.models import ActivationAudit, ActivationRule
from tacs.storage.store import seed_default_activations, validate_activation


async def _count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def _patterns(db, model) -> set[str]:
    return set((await db.execute(select(model.object_pattern))).scalars().all())


def _fail_upsert_for(store, monkeypatch, pattern):
    """Make the store flush the upsert for `pattern`, then hit a database error."""
    upsert = store._upsert

    async def upsert_then_fail(ctx, req):
        result = await upsert(ctx, req)
        if req.object_pattern == pattern:
            raise IntegrityError("INSERT INTO telemetry_activations", {}, Exception("locked"))
        return result

    monkeypatch.setattr(store, "_upsert", upsert_then_fail)


@pytest.mark.parametrize(
    "kwargs,field",
    [
        ({"object_pattern": ""}, "object_pattern"),
        ({"object_pattern": "   "}, "object_pattern"),
        ({"object_pattern": "ORDER-PKG.CREATE"}, "object_pattern"),
        ({"object_pattern": "ORDER_PKG.CREATE; DROP TABLE"}, "object_pattern"),
        ({"object_pattern": "ORDER_PKG.?"}, "object_pattern"),
        ({"object_pattern": "A" * 201}, "object_pattern"),
        ({"object_pattern": 42}, "object_pattern"),
        ({"telemetry_kind": "SPAN"}, "telemetry_kind"),
        ({"tenant_id": " "}, "tenant_id"),
        ({"tenant_id": 7}, "tenant_id"),
        ({"sampling_rate": 1.5}, "sampling_rate"),
        ({"sampling_rate": -0.1}, "sampling_rate"),
        ({"sampling_rate": "lots"}, "sampling_rate"),
        ({"telemetry_kind": "LOG", "log_level": "VERBOSE"}, "log_level"),
    ],
)
def test_validation_rejects_bad_requests(kwargs, field):
    """Operator mistakes raise ActivationValidationError naming the field."""
    args = {
        "object_pattern": "ORDER_PKG.*",
        "telemetry_kind": "TRACE",
        "tenant_id": "T1",
        **kwargs,
    }
    with pytest.raises(ActivationValidationError) as exc:
        validate_activation(**args)
    assert exc.value.field == field


def test_validation_rejects_inverted_window():
    """active_to must be strictly after active_from."""
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    with pytest.raises(ActivationValidationError) as exc:
        validate_activation("ORDER_PKG.*", "TRACE", "T1", active_from=start, active_to=start)
    assert exc.value.field == "active_to"


def test_validation_normalizes_request():
    """Patterns are upper-cased, kinds parsed and LOG levels defaulted."""
    req = validate_activation(" order_pkg.* ", "log", "all")
    assert req.object_pattern == "ORDER_PKG.*"
    assert req.telemetry_kind.value == "LOG"
    assert req.tenant_id == GLOBAL_TENANT
    assert req.min_log_level.value == "INFO"
    assert req.active_to is None


def test_validation_drops_level_for_non_log_kinds():
    """min_log_level only applies to LOG rules."""
    assert validate_activation("A.*", "TRACE", "T1", log_level="ERROR").min_log_level is None
    assert validate_activation("A.*", "METRIC", "T1", log_level="nonsense").min_log_level is None


def test_naive_datetimes_are_treated_as_utc():
    """A naive active_to is read as UTC."""
    req = validate_activation(
        "A.*", "TRACE", "T1",
        active_from=datetime(2026, 1, 1, 10, 0),
        active_to=datetime(2026, 1, 1, 11, 0),
    )
    assert req.active_to == datetime(2026, 1, 1, 11, 0, tzinfo=timezone.utc)


async def test_enable_creates_rule_with_metadata(db, store, ctx):
    """enable inserts a rule and records who created it."""
    rule = await store.enable(ctx, "order_pkg.*", "trace", "T1", 0.75)
    assert rule.id is not None
    assert rule.object_pattern == "ORDER_PKG.*"
    assert rule.telemetry_kind == "TRACE"
    assert rule.enabled is True
    assert rule.sampling_rate == 0.75
    assert rule.active_to is None
    assert rule.min_log_level is None
    assert rule.created_by == "alice"
    assert rule.updated_by == "alice"


async def test_enable_is_an_upsert_on_the_triple(db, store, ctx):
    """Re-enabling the same triple updates the existing row."""
    first = await store.enable(ctx, "ORDER_PKG.*", "TRACE", "T1", 1.0)
    await store.disable(ctx, "ORDER_PKG.*", "TRACE", "T1")
    second = await store.enable(ctx, "order_pkg.*", "TRACE", "T1", 0.3)

    assert second.id == first.id
    assert second.enabled is True
    assert second.sampling_rate == 0.3
    assert await _count(db, ActivationRule) == 1


async def test_same_pattern_for_other_tenant_or_kind_is_separate(db, store, ctx):
    """Uniqueness is on kind + pattern + tenant together."""
    await store.enable(ctx, "ORDER_PKG.*", "TRACE", "T1")
    await store.enable(ctx, "ORDER_PKG.*", "TRACE", "T2")
    await store.enable(ctx, "ORDER_PKG.*", "METRIC", "T1")
    assert await _count(db, ActivationRule) == 3


async def test_log_rules_default_to_info(store, ctx):
    """LOG rules without a level get INFO."""
    rule = await store.enable(ctx, "ORDER_PKG.*", "LOG", "T1")
    assert rule.min_log_level == "INFO"


async def test_enable_for_sets_window(store, ctx):
    """A relative duration becomes active_to = start + duration."""
    rule = await store.enable_for(ctx, "ORDER_PKG.*", "TRACE", "T1", timedelta(minutes=30))
    assert rule.active_to - rule.active_from == timedelta(minutes=30)


async def test_enable_for_rejects_non_positive_duration(store, ctx):
    """A zero duration is an inverted window."""
    with pytest.raises(ActivationValidationError):
        await store.enable_for(ctx, "ORDER_PKG.*", "TRACE", "T1", timedelta(0))


async def test_validation_failure_writes_nothing(db, store, ctx, sink):
    """Rejected requests neither persist nor audit."""
    with pytest.raises(ActivationValidationError):
        await store.enable(ctx, "ORDER_PKG.*", "TRACE", "T1", 2.0)
    assert await _count(db, ActivationRule) == 0
    assert await _count(db, ActivationAudit) == 0
    assert sink.events == []


async def test_disable_keeps_row_and_history(db, store, ctx):
    """disable stops emission but keeps the row and its audit trail."""
    await store.enable(ctx, "ORDER_PKG.CREATE", "TRACE", "T1")
    assert await should_emit(db, "ORDER_PKG.CREATE", "TRACE", "T1") is True

    rule = await store.disable(ctx, "order_pkg.create", "TRACE", "T1")
    assert rule.enabled is False
    assert await should_emit(db, "ORDER_PKG.CREATE", "TRACE", "T1") is False
    assert await _count(db, ActivationRule) == 1
    assert await _count(db, ActivationAudit) == 2


async def test_disable_unknown_rule_raises(store, ctx):
    """Disabling a triple that was never enabled is an operator error."""
    with pytest.raises(ActivationNotFoundError):
        await store.disable(ctx, "ORDER_PKG.CREATE", "TRACE", "T1")


async def test_disable_twice_is_a_no_op(db, store, ctx):
    """A second disable changes nothing and is not audited."""
    await store.enable(ctx, "ORDER_PKG.CREATE", "TRACE", "T1")
    await store.disable(ctx, "ORDER_PKG.CREATE", "TRACE", "T1")
    await store.disable(ctx, "ORDER_PKG.CREATE", "TRACE", "T1")
    assert await _count(db, ActivationAudit) == 2


async def test_enable_bulk_isolates_invalid_patterns(db, store, ctx):
    """Invalid patterns are counted and skipped; the rest are enabled."""
    result = await store.enable_bulk(
        ctx,
        ["ORDER_PKG.*", "BILLING.RUN", "bad-pattern", "", "SHIP_PKG.*"],
        "TRACE",
        "T1",
        0.5,
        timedelta(hours=1),
    )
    assert result.succeeded == 3
    assert result.failed == 2
    assert set(result.errors) == {"bad-pattern", ""}
    assert await _count(db, ActivationRule) == 3
    assert await should_emit(db, "BILLING.RUN", "TRACE", "T1", draw=lambda: 0.1) is True


async def test_enable_bulk_with_repeated_pattern_upserts(db, store, ctx):
    """A pattern listed twice ends up as one rule."""
    result = await store.enable_bulk(ctx, ["A.*", "a.*"], "METRIC", "T1")
    assert result.succeeded == 2
    assert await _count(db, ActivationRule) == 1


async def test_disable_all_is_scoped_to_tenant_and_kind(db, store, ctx):
    """The emergency brake only touches the named tenant (and kind)."""
    await store.enable(ctx, "ORDER_PKG.*", "TRACE", "T1")
    await store.enable(ctx, "BILLING.*", "TRACE", "T1")
    await store.enable(ctx, "ORDER_PKG.*", "LOG", "T1")
    await store.enable(ctx, "ORDER_PKG.*", "TRACE", "T2")

    assert await store.disable_all(ctx, "T1", "TRACE") == 2
    assert await should_emit(db, "ORDER_PKG.CREATE", "TRACE", "T1") is False
    assert await should_emit(db, "ORDER_PKG.CREATE", "LOG", "T1", "ERROR") is True
    assert await should_emit(db, "ORDER_PKG.CREATE", "TRACE", "T2") is True

    assert await store.disable_all(ctx, "T1") == 1
    assert await store.disable_all(ctx, "T1") == 0


async def test_disable_all_does_not_fall_back_to_global(db, store, ctx):
    """Silencing a tenant leaves global rules in force for it."""
    await store.enable(ctx, "ORDER_PKG.*", "TRACE", "T1")
    await store.enable(ctx, "*", "TRACE", "ALL")
    await store.disable_all(ctx, "T1")
    rule_emits = await should_emit(db, "ORDER_PKG.CREATE", "TRACE", "T1")
    assert rule_emits is True


async def test_seed_default_activations(db, store):
    """Seeding enables every kind globally; LOG from DEBUG up."""
    rules = await seed_default_activations(store)
    assert {r.telemetry_kind for r in rules} == {"TRACE", "LOG", "METRIC"}
    assert all(r.tenant_id == "ALL" and r.object_pattern == "*" for r in rules)
    assert await should_emit(db, "ANY.OBJECT", "LOG", "T1", "DEBUG") is True
    assert await should_emit(db, "ANY.OBJECT", "LOG", "T1", "TRACE") is False

    await seed_default_activations(store)
    assert await _count(db, ActivationRule) == 3


async def test_enable_bulk_isolates_non_string_patterns(db, store, ctx):
    """A non-string entry is a validation failure, not an aborted batch."""
    result = await store.enable_bulk(ctx, ["A.*", 42, "B.*"], "TRACE", "T1")
    assert (result.succeeded, result.failed) == (2, 1)
    assert "42" in result.errors

    await store.enable(ctx, "C.*", "TRACE", "T1")
    assert await _patterns(db, ActivationRule) == {"A.*", "B.*", "C.*"}
    assert await _patterns(db, ActivationAudit) == {"A.*", "B.*", "C.*"}


async def test_enable_bulk_isolates_database_errors(db, store, ctx, monkeypatch):
    """A pattern that fails in the database is counted; the others are kept."""
    _fail_upsert_for(store, monkeypatch, "B.*")
    result = await store.enable_bulk(ctx, ["A.*", "B.*", "C.*"], "TRACE", "T1")

    assert (result.succeeded, result.failed) == (2, 1)
    assert "IntegrityError" in result.errors["B.*"]
    assert await _patterns(db, ActivationRule) == {"A.*", "C.*"}
    assert await _patterns(db, ActivationAudit) == {"A.*", "C.*"}


async def test_failed_enable_leaves_nothing_to_commit(db, store, ctx, monkeypatch):
    """A flushed but failed upsert is rolled back, not committed by the next call."""
    _fail_upsert_for(store, monkeypatch, "A.*")
    with pytest.raises(IntegrityError):
        await store.enable(ctx, "A.*", "TRACE", "T1")
    monkeypatch.undo()

    await store.enable(ctx, "C.*", "TRACE", "T1")
    assert await _patterns(db, ActivationRule) == {"C.*"}
    assert await _patterns(db, ActivationAudit) == {"C.*"}


async def test_store_methods_accept_context_by_keyword(db, store, ctx, sink):
    """ctx may be passed by name like any other argument."""
    rule = await store.enable(
        ctx=ctx, object_pattern="A.*", telemetry_kind="TRACE", tenant_id="T1"
    )
    assert rule.created_by == "alice"
    assert await store.disable_all(tenant_id="T1", ctx=ctx) == 1
    assert [e.attributes["audit.changed_by"] for e in sink.events] == ["alice", "alice"]


async def test_disable_all_audits_current_values(db, session_maker, store, ctx, sink):
    """Before-snapshots come from the database, not a stale session copy."""
    rule = await store.enable(ctx, "A.*", "TRACE", "T1", 1.0)
    async with session_maker() as other:
        await other.execute(update(ActivationRule).values(sampling_rate=0.25))
        await other.commit()

    assert await store.disable_all(ctx, "T1") == 1
    assert rule.enabled is False
    assert sink.events[-1].attributes["audit.old_sampling_rate"] == "0.25"
