"""Click CLI for decoding and calibrating dynasty save tables."""
from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Optional

import click

from dynastytdb.config import LOOKUP_TABLE, REQUIRED_TABLES, derive_export_dir, derive_layout_path
from dynastytdb.errors import TdbError
from dynastytdb.profiles import (
    Config,
    Profile,
    load_config,
    resolve_profile,
    save_config,
    validate_profile_name,
)


class Context:
    """Holds resolved paths derived from --save / --profile / config."""

    def __init__(self, save: Path | None = None, profile: str | None = None):
        self._explicit_save = save
        self._profile_name = profile
        self._profile: Profile | None = None

    def _resolve(self) -> Profile:
        if self._profile is None:
            self._profile = resolve_profile(self._explicit_save, self._profile_name)
        return self._profile

    @property
    def save(self) -> Path:
        return self._resolve().save

    @property
    def layout(self) -> Path:
        return self._resolve().layout or derive_layout_path(self.save)

    def read_save(self) -> bytes:
        from dynastytdb.tdb.container import read_save
        return read_save(self.save)


pass_ctx = click.make_pass_decorator(Context)


def _split_tables(tables: Optional[str], default=REQUIRED_TABLES) -> list[str]:
    if not tables:
        return list(default)
    return [t.strip() for t in tables.split(",") if t.strip()]


def _fail(e: TdbError):
    raise click.ClickException(str(e)) from e


@click.group()
@click.option(
    "--save", required=False, default=None,
    type=click.Path(exists=False, dir_okay=False, path_type=Path),
    help="Path to the dynasty save file (optional if profiles configured)",
)
@click.option(
    "--profile", "-p", default=None, type=str,
    help="Named profile to use (from dyntdb init)",
)
@click.option("--verbose", "-v", count=True, help="Log progress (-vv for candidate detail)")
@click.version_option(package_name="dynastytdb")
@click.pass_context
def cli(ctx, save: Optional[Path], profile: Optional[str], verbose: int):
    """dyntdb - dynasty save (DB08) table decoder.

    Extract the embedded DB08 database from a save, decode tables with a
    layout artifact, and calibrate layouts against an oracle dump.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG if verbose > 1 else logging.INFO,
            format="%(levelname)s %(name)s: %(message)s",
        )
    ctx.ensure_object(dict)
    ctx.obj = Context(save=save, profile=profile)


@cli.command()
def init():
    """Set up config profiles for save/layout paths (interactive)."""
    config = load_config()

    # Show existing profiles
    if config.profiles:
        click.echo("Current profiles:")
        for name, p in config.profiles.items():
            default_marker = " (default)" if name == config.default_profile else ""
            click.echo(f"  {name}: {p.save}{default_marker}")
        click.echo()
        if not click.confirm("Overwrite existing configuration?", default=False):
            click.echo("Aborted.")
            return
        config = Config()

    click.echo("Set up dyntdb profiles. Each profile stores a save path and an optional layout.\n")

    while True:
        default_name = "default" if not config.profiles else None
        name = click.prompt("Profile name", default=default_name).strip()
        if not validate_profile_name(name):
            click.echo(f"Invalid profile name '{name}'. Use letters, digits, hyphens, underscores.")
            continue

        while True:
            save_str = click.prompt("Path to dynasty save").strip().strip('"').strip("'")
            save_path = Path(save_str)
            if save_path.exists() and save_path.is_file():
                break
            click.echo(f"File not found: {save_path}")

        layout_str = click.prompt(
            "Path to layout JSON (blank for default)", default="", show_default=False,
        ).strip().strip('"').strip("'")
        layout_path = Path(layout_str) if layout_str else None

        config.profiles[name] = Profile(name=name, save=save_path, layout=layout_path)

        if len(config.profiles) == 1:
            config.default_profile = name
        elif click.confirm(f"Set '{name}' as the default profile?", default=False):
            config.default_profile = name

        if not click.confirm("\nAdd another profile?", default=False):
            break
        click.echo()

    if config.default_profile is None and config.profiles:
        config.default_profile = next(iter(config.profiles))

    saved_path = save_config(config)
    click.echo(f"\nConfig saved to {saved_path}")


@cli.command()
@pass_ctx
def tables(ctx: Context):
    """List the containers and table directory of a save."""
    from dynastytdb.tdb.container import extract_containers
    from dynastytdb.tdb.decoder import parse_table_meta
    from dynastytdb.tdb.directory import parse_directory, table_bytes

    data = ctx.read_save()
    try:
        extracted = extract_containers(data)
        containers = [("DB1", extracted.db1_offset, extracted.db1)]
        if extracted.db2 is not None:
            containers.append(("DB2", extracted.db2_offset, extracted.db2))

        for label, offset, container in containers:
            directory = parse_directory(container)
            hdr = directory.header
            endian = "big" if hdr.big_endian else "little"
            click.echo(f"{label} at 0x{offset:X}: {hdr.db_length:,} bytes, "
                       f"{hdr.table_count} tables, {endian}-endian flag")
            click.echo(f"  {'Name':<6}  {'Offset':>10}  {'Size':>10}  {'RecSize':>7}  {'Count':>6}  {'Cap':>6}")
            click.echo("  " + "-" * 54)
            for entry in directory:
                try:
                    meta = parse_table_meta(table_bytes(container, entry))
                    geometry = f"{meta.record_size_bytes:>7}  {meta.record_count:>6}  {meta.capacity:>6}"
                except TdbError:
                    geometry = f"{'?':>7}  {'?':>6}  {'?':>6}"
                click.echo(f"  {entry.name:<6}  0x{entry.abs:08X}  {entry.size:>10,}  {geometry}")
            click.echo()
    except TdbError as e:
        _fail(e)


@cli.command()
@click.option("--tables", "table_names", default=None,
              help="Comma-separated table names (default: importer tables)")
@click.option("--layout", "layout_path", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              default=None, help="Layout JSON (default: profile layout)")
@click.option("--max-rows", type=int, default=None, help="Decode at most N rows per table")
@click.option("--format", "fmt", type=click.Choice(["csv", "json"]), default="csv")
@click.option("--output", "-o", "output_dir", type=click.Path(file_okay=False, path_type=Path),
              default=None, help="Directory to write one file per table (or one JSON file)")
@pass_ctx
def decode(ctx: Context, table_names: Optional[str], layout_path: Optional[Path],
           max_rows: Optional[int], fmt: str, output_dir: Optional[Path]):
    """Decode tables with a layout and export them as CSV or JSON."""
    from dynastytdb.export.csv_export import export_csv
    from dynastytdb.export.json_export import export_json
    from dynastytdb.tdb.decoder import decode_save_tables, decorate_rows
    from dynastytdb.tdb.records import load_layout

    layout_path = layout_path or ctx.layout
    if not layout_path.exists():
        raise click.UsageError(f"Layout not found: {layout_path}. Run 'dyntdb discover' first.")

    names = _split_tables(table_names)
    t0 = time.perf_counter()
    try:
        layout = load_layout(layout_path)
        result = decode_save_tables(ctx.read_save(), layout, names, max_rows=max_rows)
    except TdbError as e:
        _fail(e)

    extra = {name: decorate_rows(t) for name, t in result.tables.items()}
    click.echo(f"Decoded {len(result.tables)} of {len(names)} tables "
               f"in {time.perf_counter() - t0:.2f}s", err=True)
    for name, err in result.errors.items():
        click.echo(f"  {name}: FAILED ({err})", err=True)

    if fmt == "json":
        text = export_json(result.tables[n] for n in names if n in result.tables)
        if output_dir:
            output_dir.mkdir(parents=True, exist_ok=True)
            out = output_dir / "tables.json"
            out.write_text(text, encoding="utf-8")
            click.echo(f"Exported to {out}", err=True)
        else:
            click.echo(text)
    else:
        if output_dir is None and len(result.tables) > 1:
            output_dir = derive_export_dir(ctx.save)
        for name in names:
            decoded = result.tables.get(name)
            if decoded is None:
                continue
            text = export_csv(decoded, extra[name])
            if output_dir:
                output_dir.mkdir(parents=True, exist_ok=True)
                (output_dir / f"{name}.csv").write_text(text, encoding="utf-8")
            else:
                click.echo(text, nl=False)
        if output_dir:
            click.echo(f"Exported to {output_dir}", err=True)

    # Partial results were written; still signal the failed tables
    if result.errors:
        click.get_current_context().exit(1)


@cli.command()
@click.option("--oracle", "oracle_path", required=True,
              type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Oracle JSON dump ({Tables: [{Name, Fields, Rows}]})")
@click.option("--tables", "table_names", default=None,
              help="Comma-separated table names (default: importer tables)")
@click.option("--output", "-o", "output_path", type=click.Path(dir_okay=False, path_type=Path),
              default=None, help="Write layout JSON here (default: profile layout)")
@pass_ctx
def discover(ctx: Context, oracle_path: Path, table_names: Optional[str], output_path: Optional[Path]):
    """Calibrate a layout artifact against an oracle dump."""
    from dynastytdb.discover.engine import discover_layout
    from dynastytdb.discover.oracle import load_oracle
    from dynastytdb.tdb.container import content_hash, extract_containers
    from dynastytdb.tdb.records import dump_layout

    names = _split_tables(table_names)
    output_path = output_path or ctx.layout

    try:
        oracle = load_oracle(oracle_path)
    except (ValueError, json.JSONDecodeError) as e:
        raise click.ClickException(f"Bad oracle dump {oracle_path}: {e}") from e

    data = ctx.read_save()
    click.echo(f"Save:   {ctx.save} ({len(data) / 1024:.0f} KB)")
    click.echo(f"Oracle: {oracle_path} ({len(oracle)} tables)")

    t0 = time.perf_counter()
    try:
        extracted = extract_containers(data)
        source = {"saveFile": ctx.save.name, "sha256": content_hash(data)}
        result = discover_layout(extracted.db1, oracle, names, source=source)
    except TdbError as e:
        _fail(e)
    click.echo(f"Calibrated {len(result.tables)} tables in {time.perf_counter() - t0:.1f}s\n")

    click.echo(f"{'Table':<6}  {'Fields':>6}  {'Located':>7}  Notes")
    click.echo("-" * 60)
    for name, d in result.tables.items():
        total = len(d.layout.fields) + len(d.omitted)
        note = "sequential (no oracle rows)" if d.sequential else ""
        if d.omitted:
            note = (note + "; " if note else "") + "omitted: " + ", ".join(d.omitted)
        click.echo(f"{name:<6}  {total:>6}  {len(d.layout.fields):>7}  {note}")
    for name, err in result.errors.items():
        click.echo(f"{name:<6}  FAILED: {err}")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(dump_layout(result.layout), encoding="utf-8")
    click.echo(f"\nWrote {output_path}")


@cli.command()
@click.option("--table", "table_name", default=LOOKUP_TABLE, show_default=True,
              help="Table holding the lookup mapping")
@click.option("--output", "-o", "output_path", type=click.Path(dir_okay=False, path_type=Path),
              default=None, help="Write the inferred table as JSON")
@pass_ctx
def lookup(ctx: Context, table_name: str, output_path: Optional[Path]):
    """Infer the embedded level -> value lookup table from raw bytes."""
    from dynastytdb.discover.lookup import infer_lookup_table
    from dynastytdb.errors import MissingTableError
    from dynastytdb.tdb.container import extract_containers
    from dynastytdb.tdb.directory import parse_directory, table_bytes

    try:
        extracted = extract_containers(ctx.read_save())
        directory = parse_directory(extracted.db1)
        entry = directory.get(table_name)
        if entry is None:
            raise MissingTableError(table_name)
        result = infer_lookup_table(table_bytes(extracted.db1, entry))
    except TdbError as e:
        _fail(e)

    idx, val = result.index_field, result.value_field
    click.echo(f"Index: bit {idx.bit_offset}, {idx.bit_length} bits, {idx.mode}")
    click.echo(f"Value: bit {val.bit_offset}, {val.bit_length} bits, {val.mode}")
    click.echo(f"Monotonic violations: {result.violations}\n")
    for row_start in range(0, len(result.values), 10):
        chunk = result.values[row_start:row_start + 10]
        click.echo(f"  {row_start:>2}: " + " ".join(f"{v:>3}" for v in chunk))

    if output_path:
        output_path.write_text(json.dumps(result.to_dict(), indent=2) + "\n", encoding="utf-8")
        click.echo(f"\nWrote {output_path}")


@cli.command()
@click.argument("table_name")
@click.argument("expected", nargs=-1, required=True)
@click.option("--record", "rec_no", type=int, default=0, show_default=True, help="Record index")
@click.option("--max-hits", type=int, default=8, show_default=True,
              help="Stop listing offsets for a value after N hits (0 = all)")
@click.option("--top", type=int, default=5, show_default=True, help="Show the N best combinations")
@pass_ctx
def probe(ctx: Context, table_name: str, expected: tuple[str, ...], rec_no: int,
          max_hits: int, top: int):
    """Locate known values in one record (EXPECTED as NAME:BITS:VALUE)."""
    from dynastytdb.discover.probe import ExpectedValue, probe_record
    from dynastytdb.errors import MissingTableError
    from dynastytdb.tdb.container import extract_containers
    from dynastytdb.tdb.decoder import parse_table_meta
    from dynastytdb.tdb.directory import parse_directory, table_bytes

    try:
        values = [ExpectedValue.parse(e) for e in expected]
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="EXPECTED") from e

    try:
        extracted = extract_containers(ctx.read_save())
        directory = parse_directory(extracted.db1)
        entry = directory.get(table_name)
        if entry is None:
            raise MissingTableError(table_name)
        table = table_bytes(extracted.db1, entry)
        meta = parse_table_meta(table)
    except TdbError as e:
        _fail(e)

    if not 0 <= rec_no < meta.capacity:
        raise click.BadParameter(f"record {rec_no} outside 0..{meta.capacity - 1}", param_hint="--record")
    start = meta.record_data_offset + rec_no * meta.record_size_bytes
    record = table[start:start + meta.record_size_bytes]

    results = probe_record(record, values, max_hits=max_hits or None)
    for r in results[:top]:
        order = " first-bit-high" if r.reverse_value else ""
        click.echo(f"\n== {r.transform} {r.mode}{order} hits={r.hit_count}")
        for ev in values:
            offsets = r.hits.get(ev.name)
            if offsets:
                click.echo(f"  {ev.name}: {','.join(str(o) for o in offsets)}")
