"""
CLOSURE MAIN - Operational CLI for a closure database

Commands:
    verify   - Compare the stored closure with a fresh recomputation
    export   - Export the link and closure tables to files
    stats    - Show per-scope row counts

Usage:
    # Verify every scope (exit code 1 if any is inconsistent)
    python main.py verify --db data/closure.db

    # Verify one scope
    python main.py verify --db data/closure.db --scope category

    # Export tables
    python main.py export --db data/closure.db --format parquet --output ./export
    python main.py export --db data/closure.db --format json --scope category

    # Row counts
    python main.py stats --db data/closure.db

--db defaults to [store] path in config/closure.toml.
"""
import sys
from pathlib import Path

# Add the project root to path for imports
sys.path.insert(0, str(Path(__file__).parent))


def _open_backend(args):
    from closure.backend import SQLiteBackend

    db_path = Path(args.db)
    if not db_path.exists():
        print(f"Database not found: {db_path}")
        sys.exit(1)
    return SQLiteBackend(db_path)


def cmd_verify(args):
    """Handle verify command - recompute and compare the closure."""
    from closure.closure_store import ClosureStore
    from closure.invariants import ClosureInvariants
    from closure.link_store import LinkStore

    backend = _open_backend(args)
    links = LinkStore(backend)
    closure = ClosureStore(backend)

    scopes = [args.scope] if args.scope else backend.scopes()
    failed = False

    for scope in scopes:
        report = ClosureInvariants.verify(links, closure, scope)
        status = "OK" if report.valid else "INVALID"
        print(
            f"[{status}] {scope}: {report.metrics['nodes']} nodes, "
            f"{report.metrics['edges']} edges, "
            f"{report.metrics['closure_entries']} closure entries"
        )
        if not report.valid:
            failed = True
            for triple in report.missing[: args.limit]:
                print(f"  missing   {triple}")
            for triple in report.spurious[: args.limit]:
                print(f"  spurious  {triple}")
            for node_id in report.missing_self[: args.limit]:
                print(f"  no self entry for {node_id}")
            for node_id in report.root_marker_violations[: args.limit]:
                print(f"  root marker violation on {node_id}")

    backend.close()
    if failed:
        sys.exit(1)


def _export_json(backend, scope, output_dir):
    from closure.closure_store import ClosureStore
    from closure.link_store import LinkStore
    from closure.schemas import serialize_entries, serialize_links

    links = LinkStore(backend)
    closure = ClosureStore(backend)
    scopes = [scope] if scope else backend.scopes()

    rows = {
        "links": [link for s in scopes for link in links.all_links(s)],
        "closure": [entry for s in scopes for entry in closure.all_entries(s)],
    }
    encoders = {"links": serialize_links, "closure": serialize_entries}

    for name, items in rows.items():
        path = output_dir / f"{name}.json"
        path.write_bytes(encoders[name](items))
        print(f"  {name}: {len(items)} rows -> {path}")


def cmd_export(args):
    """Handle export command - write link and closure tables to files."""
    from closure.dag import closure_frame, links_frame

    backend = _open_backend(args)
    output_dir = Path(args.output)
    output_dir.mkdir(parents=True, exist_ok=True)

    print(f"Exporting tables to {output_dir}...")
    if args.format == "json":
        _export_json(backend, args.scope, output_dir)
        backend.close()
        return

    frames = {
        "links": links_frame(backend, args.scope),
        "closure": closure_frame(backend, args.scope),
    }

    for name, frame in frames.items():
        path = output_dir / f"{name}.{args.format}"
        if args.format == "parquet":
            frame.write_parquet(path)
        else:
            frame.write_csv(path)
        print(f"  {name}: {frame.height} rows -> {path}")

    backend.close()


def cmd_stats(args):
    """Handle stats command - per-scope row counts."""
    backend = _open_backend(args)
    scopes = backend.scopes()

    if not scopes:
        print("No scopes found.")
    for scope in scopes:
        counts = backend.table_counts(scope)
        print(f"{scope}: {counts['links']} links, {counts['closure']} closure entries")

    totals = backend.table_counts()
    print(f"Total: {totals['links']} links, {totals['closure']} closure entries")
    backend.close()


def main(argv=None):
    """Main entry point with subcommands."""
    import argparse
    from infrastructure.config import configure_logging, load_config

    config = load_config()
    configure_logging(config)

    parser = argparse.ArgumentParser(
        description="closure-dag - materialized transitive closure tooling",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="command", required=True, help="Available commands")

    def add_db(sub):
        sub.add_argument("--db", default=config.store.path, help="SQLite database file")

    # verify command
    verify_parser = subparsers.add_parser("verify", help="Check the closure against a recomputation")
    add_db(verify_parser)
    verify_parser.add_argument("--scope", help="Only verify this scope")
    verify_parser.add_argument("--limit", type=int, default=20, help="Max discrepancies to print per kind")
    verify_parser.set_defaults(func=cmd_verify)

    # export command
    export_parser = subparsers.add_parser("export", help="Export tables to files")
    add_db(export_parser)
    export_parser.add_argument("--output", "-o", default="./export", help="Output directory")
    export_parser.add_argument("--format", choices=["parquet", "csv", "json"], default="parquet")
    export_parser.add_argument("--scope", help="Only export this scope")
    export_parser.set_defaults(func=cmd_export)

    # stats command
    stats_parser = subparsers.add_parser("stats", help="Show row counts per scope")
    add_db(stats_parser)
    stats_parser.set_defaults(func=cmd_stats)

    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
