import argparse
import json
import sys

from .app import parse_request, prepare_config, run_pipeline
from .core.errors import FortuneGenError
from .core.models import GenerationState, SourceType, Theme
from .core.validator import validate_pipeline_models
from .storage.store import SQLiteFortuneStore


def print_report(state: GenerationState):
    """
    Helper to pretty-print the final generation results.
    """
    result = state.to_result()
    print("\n" + "=" * 80)
    print(f" FINAL REPORT | Accepted {result.accepted_count}/{result.requested} ({result.category})")
    print("=" * 80 + "\n")

    if result.message:
        print(result.message)

    for outcome in result.outcomes:
        print(
            f"  {outcome.source_type.value:<22} {outcome.collected:>3}/{outcome.requested:<3} "
            f"{outcome.status.value} ({outcome.reason}, {outcome.attempts} attempt(s), {outcome.rejected} rejected)"
        )
    if result.outcomes:
        print("-" * 60)

    for item in result.items:
        suffix = ""
        if item.reference:
            suffix = f" ({item.reference}{', ' + item.translation if item.translation else ''})"
        elif item.author:
            suffix = f" - {item.author}"
        print(f"  • [{item.source_type.value}] \"{item.content}\"{suffix}")

    if state.persisted_count:
        print(f"\nStored {state.persisted_count} items.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate unique fortunes with layered deduplication.")
    parser.add_argument(
        "--category",
        default=SourceType.AFFIRMATION.value,
        choices=[s.value for s in SourceType] + ["all"],
    )
    parser.add_argument("--count", type=int, default=20, help="Number of items (1-200).")
    parser.add_argument("--theme", choices=[t.value for t in Theme], default=None)
    parser.add_argument("--translation", default=None, help="Bible translation, e.g. NIV or ESV.")
    parser.add_argument(
        "--categories",
        nargs="+",
        choices=[s.value for s in SourceType],
        default=None,
        help="Subset of categories when --category all.",
    )
    parser.add_argument("--db", default=None, help="SQLite file (default: $FORTUNEGEN_DB_PATH or data/fortunes.db).")
    parser.add_argument("--validate-models", action="store_true", help="Check model availability before running.")
    parser.add_argument("--output", default=None, help="Write the full result JSON to this file.")
    parser.add_argument("--debug", action="store_true")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    print("Initializing Pipeline System...")

    try:
        request = parse_request({
            "category": args.category,
            "count": args.count,
            "theme": args.theme,
            "translation": args.translation,
            "categories": args.categories,
        })
        config = prepare_config(request)
        config["debug"] = args.debug
        if args.validate_models:
            validate_pipeline_models(config)
        store = SQLiteFortuneStore(args.db)
    except FortuneGenError as e:
        print(f"Configuration Error: {e}")
        return 2

    try:
        final_state = run_pipeline(request, store=store, config=config)
    except FortuneGenError as e:
        print(f"\nCRITICAL PIPELINE ERROR: {e}")
        return 1

    print_report(final_state)

    if args.output:
        with open(args.output, "w") as f:
            json.dump(final_state.to_result().model_dump(mode="json"), f, indent=2)
        print(f"\nFull structured data saved to '{args.output}'")
    return 0


if __name__ == "__main__":
    sys.exit(main())
