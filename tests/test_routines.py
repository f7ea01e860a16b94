"""Unit tests for the function/procedure comparator."""

from pgschemasync.collectors import Q_FUNCTION_DEF, Q_PROCEDURE_DEF, Q_ROUTINE_BODY_FALLBACK, Q_ROUTINES
from pgschemasync.models import RoutineDescriptor
from pgschemasync.routines import generate_routine_operations, render_definition, routine_signature

from conftest import FIXED_MS

FUNC_DEF = (
    "CREATE OR REPLACE FUNCTION dev.touch_updated_at()\n"
    " RETURNS trigger\n"
    " LANGUAGE plpgsql\n"
    "AS $function$\n"
    "BEGIN NEW.updated_at := now(); RETURN NEW; END;\n"
    "$function$\n"
)


def _routine(name: str, kind: str = "FUNCTION", arguments: str = "", body: str = "BEGIN END;", **extra: object) -> dict:
    row = {
        "routine_name": name,
        "routine_type": kind,
        "specific_name": f"{name}_1",
        "data_type": "trigger" if kind == "FUNCTION" else None,
        "arguments": arguments,
        "routine_definition": body,
    }
    row.update(extra)
    return row


class TestRoutineHelpers:
    """Tests for signatures and definition rendering."""

    def test_signature_with_and_without_arguments(self) -> None:
        assert routine_signature("prod", RoutineDescriptor(name="f", kind="FUNCTION", arguments="a integer")) == "prod.f(a integer)"
        assert routine_signature("prod", RoutineDescriptor(name="f", kind="FUNCTION", arguments="")) == "prod.f()"
        assert routine_signature("prod", RoutineDescriptor(name="f", kind="FUNCTION")) == "prod.f"

    def test_full_definition_is_rewritten_and_terminated(self) -> None:
        routine = RoutineDescriptor(name="touch_updated_at", kind="FUNCTION")
        (text,) = render_definition(FUNC_DEF, routine, "dev", "prod")
        assert text.startswith("CREATE OR REPLACE FUNCTION prod.touch_updated_at()")
        assert text.endswith("$function$;")

    def test_missing_definition(self) -> None:
        routine = RoutineDescriptor(name="p", kind="PROCEDURE")
        assert render_definition(None, routine, "dev", "prod") == ["-- TODO: Could not retrieve definition for PROCEDURE p"]
        assert render_definition("   ", routine, "dev", "prod") == ["-- TODO: Could not retrieve definition for PROCEDURE p"]

    def test_bare_body_is_commented_out(self) -> None:
        routine = RoutineDescriptor(name="f", kind="FUNCTION")
        assert render_definition("\nSELECT 1\nFROM dev.t\n", routine, "dev", "prod") == [
            "-- TODO: Only the body of FUNCTION prod.f is available; recreate it manually",
            "-- SELECT 1",
            "-- FROM prod.t",
        ]


class TestGenerateRoutineOperations:
    """Tests for generate_routine_operations."""

    def test_missing_function_is_created_from_definition(self, make_ctx) -> None:
        ctx = make_ctx(source={Q_ROUTINES: [_routine("touch_updated_at")], Q_FUNCTION_DEF: [{"definition": FUNC_DEF}]})
        lines = generate_routine_operations(ctx)
        assert lines[0] == "-- Creating function touch_updated_at in prod"
        assert lines[1].startswith("CREATE OR REPLACE FUNCTION prod.touch_updated_at()")
        assert lines[-1] == ""
        assert (Q_FUNCTION_DEF, ("dev", "touch_updated_at")) in ctx.source.calls

    def test_missing_procedure_uses_procedure_lookup(self, make_ctx) -> None:
        ctx = make_ctx(
            source={
                Q_ROUTINES: [_routine("archive", kind="PROCEDURE")],
                Q_PROCEDURE_DEF: [{"definition": "CREATE OR REPLACE PROCEDURE dev.archive()\n LANGUAGE sql\nAS $$ SELECT 1 $$"}],
            }
        )
        lines = generate_routine_operations(ctx)
        assert lines[0] == "-- Creating procedure archive in prod"
        assert lines[1] == "CREATE OR REPLACE PROCEDURE prod.archive()\n LANGUAGE sql\nAS $$ SELECT 1 $$;"

    def test_body_fallback_becomes_manual_block(self, make_ctx) -> None:
        ctx = make_ctx(
            source={Q_ROUTINES: [_routine("f")], Q_ROUTINE_BODY_FALLBACK: [{"routine_definition": "SELECT 1"}]}
        )
        lines = generate_routine_operations(ctx)
        assert lines[1] == "-- TODO: Only the body of FUNCTION prod.f is available; recreate it manually"

    def test_extra_function_is_renamed(self, make_ctx) -> None:
        ctx = make_ctx(target={Q_ROUTINES: [_routine("legacy_fn", arguments="a integer, b text")]})
        assert generate_routine_operations(ctx) == [
            "-- FUNCTION legacy_fn exists in prod but not in dev",
            "-- Renaming function to preserve before manual drop",
            f"ALTER FUNCTION prod.legacy_fn(a integer, b text) RENAME TO legacy_fn_dropped_{FIXED_MS};",
            f"-- TODO: Manually drop function prod.legacy_fn_dropped_{FIXED_MS} after confirming it's no longer needed",
        ]

    def test_changed_body_renames_then_recreates(self, make_ctx) -> None:
        ctx = make_ctx(
            source={Q_ROUTINES: [_routine("f", body="BEGIN RETURN 2; END;")], Q_FUNCTION_DEF: [{"definition": FUNC_DEF}]},
            target={Q_ROUTINES: [_routine("f", body="BEGIN RETURN 1; END;")]},
        )
        lines = generate_routine_operations(ctx)
        assert lines[:3] == [
            "-- function f has changed, updating in prod",
            f"-- Renaming old function to f_old_{FIXED_MS} for manual review",
            f"ALTER FUNCTION prod.f() RENAME TO f_old_{FIXED_MS};",
        ]
        assert lines[3].startswith("CREATE OR REPLACE FUNCTION")
        assert lines[-1] == ""

    def test_qualifier_only_body_difference_is_not_a_change(self, make_ctx) -> None:
        ctx = make_ctx(
            source={Q_ROUTINES: [_routine("f", body="SELECT * FROM dev.users")]},
            target={Q_ROUTINES: [_routine("f", body="SELECT * FROM prod.users")]},
        )
        assert generate_routine_operations(ctx) == []

    def test_function_and_procedure_with_same_name_are_distinct(self, make_ctx) -> None:
        ctx = make_ctx(
            source={Q_ROUTINES: [_routine("f"), _routine("f", kind="PROCEDURE")]},
            target={Q_ROUTINES: [_routine("f")]},
        )
        lines = generate_routine_operations(ctx)
        assert lines[0] == "-- Creating procedure f in prod"

    def test_qualifier_only_argument_difference_is_not_a_change(self, make_ctx) -> None:
        ctx = make_ctx(
            source={Q_ROUTINES: [_routine("set_mood", arguments="p dev.mood")]},
            target={Q_ROUTINES: [_routine("set_mood", arguments="p prod.mood")]},
        )
        assert generate_routine_operations(ctx) == []

    def test_argument_type_change_is_a_change(self, make_ctx) -> None:
        ctx = make_ctx(
            source={Q_ROUTINES: [_routine("set_mood", arguments="p dev.mood")]},
            target={Q_ROUTINES: [_routine("set_mood", arguments="p text")]},
        )
        assert generate_routine_operations(ctx)[0] == "-- function set_mood has changed, updating in prod"
