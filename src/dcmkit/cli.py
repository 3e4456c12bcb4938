"""dcmkit command-line interface."""

from __future__ import annotations

import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path
from typing import Any

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .composer import (
    DirectMode,
    ExecutionMode,
    TransformMode,
    compose_registry_setting,
    compose_script_setting,
)
from .config import CONFIG_DIR, CONFIG_FILE, STARTER_CONFIG, discover_config, load_config
from .exceptions import DcmKitError, StoreUnavailableError
from .fragments import RULES_NS, local_name, parse_document, qname
from .merger import ArtifactMerger, source_identity_of
from .models import ComposerConfig, CompositionResult, RegistryValue, ScriptRequest
from .normalize import ValueKind, normalize_value_kind
from .store import FileArtifactStore

app = typer.Typer(
    name="dcm",
    help="dcmkit: compose compliance settings and rules into configuration items",
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)


def _get_version_string() -> str:
    """Get version string from package metadata."""
    try:
        return get_version("dcmkit")
    except PackageNotFoundError:
        return "unknown"


def version_callback(value: bool) -> None:
    """Callback for --version flag."""
    if value:
        console.print(f"dcmkit version {_get_version_string()}")
        raise typer.Exit


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """dcmkit: compose compliance settings and rules into configuration items."""


def _load_composer_config(config_path: Path | None) -> ComposerConfig:
    path = config_path or discover_config()
    if path is None:
        return ComposerConfig()
    return load_config(path)


def _resolve_mode(
    document: Path | None,
    source_id: str | None,
    ci: str | None,
    config: ComposerConfig,
) -> ExecutionMode:
    """Pick direct or transform mode from the supplied options."""
    if (document is None) == (ci is None):
        console.print("[red]Error:[/red] Specify exactly one of --document or --ci")
        raise typer.Exit(1)

    if ci is not None:
        if config.store_root is None:
            msg = "No store_root configured; direct mode needs a configuration item store"
            raise StoreUnavailableError(msg)
        store = FileArtifactStore(config.store_root)
        return DirectMode(handle=store.load(ci), store=store)

    try:
        text = document.read_text(encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Error:[/red] Failed to read document: {escape(str(e))}")
        raise typer.Exit(1) from e

    if source_id is None:
        source_id = str(source_identity_of(parse_document(text)))
    return TransformMode(document=text, source_identity=source_id)


def _report(result: CompositionResult, output: Path | None) -> None:
    """Write the transformed document and summarize what was added."""
    status = console
    if result.document is not None:
        if output is None:
            sys.stdout.write(result.document + "\n")
            status = err_console
        else:
            try:
                output.write_text(result.document, encoding="utf-8")
            except OSError as e:
                console.print(f"[red]Error:[/red] Failed to write document: {escape(str(e))}")
                raise typer.Exit(1) from e
            console.print(f"[green]✓[/green] Wrote updated document to {output}")
    else:
        console.print("[green]✓[/green] Committed configuration item")

    for logical_name, rule_id in zip(result.logical_names, result.rule_ids):
        status.print(f"  • {logical_name} (rule {rule_id})")


def _fail(error: Exception) -> typer.Exit:
    console.print(f"[red]Error:[/red] {escape(str(error))}")
    return typer.Exit(1)


DOCUMENT_OPTION = typer.Option(
    None,
    "--document",
    "-d",
    help="Configuration item document to transform",
    exists=True,
    dir_okay=False,
)
SOURCE_ID_OPTION = typer.Option(
    None,
    "--source-id",
    help="AuthoringScopeId/LogicalName/Version of the document (read from it if omitted)",
)
CI_OPTION = typer.Option(
    None,
    "--ci",
    help="Logical name of a configuration item in the store (direct mode)",
)
OUTPUT_OPTION = typer.Option(
    None,
    "--output",
    "-o",
    help="Write the transformed document here instead of stdout",
)
CONFIG_OPTION = typer.Option(
    None,
    "--config",
    help="Composer configuration (defaults to the nearest .dcmkit/config.yaml)",
)


@app.command()
def init(
    path: Path = typer.Option(
        Path.cwd(),
        "--path",
        "-p",
        help="Directory to initialize",
    ),
    site_code: str = typer.Option(
        "PS1",
        "--site-code",
        help="Site code of the configuration management site",
    ),
) -> None:
    """Create a starter composer configuration and an empty store."""
    config_dir = path / CONFIG_DIR
    config_path = config_dir / CONFIG_FILE

    if config_path.exists():
        console.print(f"[yellow]Warning:[/yellow] Configuration exists at {config_path}")
        if not typer.confirm("Overwrite existing configuration?"):
            console.print("Initialization cancelled")
            return

    try:
        (config_dir / "store").mkdir(parents=True, exist_ok=True)
        config_path.write_text(STARTER_CONFIG.format(site_code=site_code), encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Error:[/red] Failed to create configuration: {escape(str(e))}")
        raise typer.Exit(1) from e

    console.print(f"[green]✓[/green] Configuration initialized at {config_path}")
    console.print("\nNext steps:")
    console.print(f"  1. Place configuration item documents in {config_dir / 'store'}")
    console.print("  2. Run 'dcm registry --ci <LogicalName> ...' to add settings")


@app.command()
def script(
    name: str = typer.Option(..., "--name", "-n", help="Setting and rule display name"),
    detection: Path = typer.Option(
        ...,
        "--detection",
        help="Detection script file",
        exists=True,
        dir_okay=False,
    ),
    compliant_value: str = typer.Option(
        ...,
        "--compliant-value",
        help="Detection output that means compliant",
    ),
    remediation: Path | None = typer.Option(
        None,
        "--remediation",
        help="Remediation script file",
        exists=True,
        dir_okay=False,
    ),
    language: str | None = typer.Option(None, "--language", help="VBScript, PowerShell or JScript"),
    run_as_user: bool = typer.Option(False, "--run-as-user", help="Run with user credentials"),
    is_64bit: bool | None = typer.Option(None, "--x64/--x86", help="Script host bitness"),
    description: str = typer.Option("", "--description", help="Setting and rule description"),
    severity: str | None = typer.Option(None, "--severity", help="None, Warning, Critical or CriticalWithEvent"),
    remediate: bool = typer.Option(True, "--remediate/--no-remediate", help="Remediate when non-compliant"),
    noncompliant_if_missing: bool = typer.Option(
        True,
        "--noncompliant-if-missing/--compliant-if-missing",
        help="Treat a missing setting as non-compliant",
    ),
    document: Path | None = DOCUMENT_OPTION,
    source_id: str | None = SOURCE_ID_OPTION,
    ci: str | None = CI_OPTION,
    output: Path | None = OUTPUT_OPTION,
    config_path: Path | None = CONFIG_OPTION,
) -> None:
    """Add a script setting and an equality rule on its output."""
    try:
        config = _load_composer_config(config_path)
        request = ScriptRequest(
            name=name,
            detection_script=detection.read_text(encoding="utf-8"),
            remediation_script=remediation.read_text(encoding="utf-8") if remediation else "",
            compliant_value=compliant_value,
            language=language,
            run_as_user=run_as_user,
            is_64bit=is_64bit,
            description=description,
            severity=severity,
            remediate=remediate,
            noncompliant_when_not_found=noncompliant_if_missing,
        )
        mode = _resolve_mode(document, source_id, ci, config)
        result = compose_script_setting(request, mode, config)
    except (DcmKitError, ValidationError, OSError) as e:
        raise _fail(e) from e

    _report(result, output)


def _load_batch(batch: Path) -> list[Any]:
    """Read registry value descriptors from a YAML list (or ``values:`` key)."""
    with batch.open(encoding="utf-8") as f:
        data: Any = yaml.safe_load(f)
    if isinstance(data, dict):
        data = data.get("values")
    if not isinstance(data, list):
        msg = f"Batch file {batch} must contain a list of registry values"
        raise ValueError(msg)
    return data


@app.command()
def registry(
    hive: str | None = typer.Option(None, "--hive", help="HKLM, HKCU, HKEY_LOCAL_MACHINE, ..."),
    key: str | None = typer.Option(None, "--key", help="Key path below the hive"),
    value_name: str | None = typer.Option(None, "--value-name", help="Registry value name"),
    data: list[str] | None = typer.Option(
        None,
        "--data",
        help="Value data (repeat for REG_MULTI_SZ)",
    ),
    value_kind: str = typer.Option("REG_SZ", "--type", help="REG_SZ, REG_MULTI_SZ, REG_EXPAND_SZ, REG_DWORD, REG_QWORD or REG_BINARY"),
    convert_dword_to_qword: bool = typer.Option(
        False,
        "--dword-as-qword",
        help="Enforce REG_DWORD data with a native Int64 setting instead of a script",
    ),
    batch: Path | None = typer.Option(
        None,
        "--batch",
        help="YAML file with a list of registry values",
        exists=True,
        dir_okay=False,
    ),
    name: str | None = typer.Option(None, "--name", "-n", help="Setting and rule display name"),
    description: str = typer.Option("", "--description", help="Setting and rule description"),
    severity: str | None = typer.Option(None, "--severity", help="None, Warning, Critical or CriticalWithEvent"),
    remediate: bool = typer.Option(True, "--remediate/--no-remediate", help="Remediate when non-compliant"),
    noncompliant_if_missing: bool = typer.Option(
        True,
        "--noncompliant-if-missing/--compliant-if-missing",
        help="Treat a missing value as non-compliant",
    ),
    is_64bit: bool | None = typer.Option(None, "--x64/--x86", help="Registry view bitness"),
    document: Path | None = DOCUMENT_OPTION,
    source_id: str | None = SOURCE_ID_OPTION,
    ci: str | None = CI_OPTION,
    output: Path | None = OUTPUT_OPTION,
    config_path: Path | None = CONFIG_OPTION,
) -> None:
    """Add settings and rules enforcing registry values."""
    try:
        config = _load_composer_config(config_path)
        if batch is not None:
            values = _load_batch(batch)
        else:
            if hive is None or key is None or value_name is None or not data:
                console.print(
                    "[red]Error:[/red] --hive, --key, --value-name and --data are "
                    "required unless --batch is given",
                )
                raise typer.Exit(1)
            kind = normalize_value_kind(value_kind)
            value_data: Any = data if kind is ValueKind.REG_MULTI_SZ else data[0]
            values = [
                RegistryValue(
                    hive=hive,
                    key_path=key,
                    value_name=value_name,
                    value_data=value_data,
                    value_kind=kind,
                    convert_dword_to_qword=convert_dword_to_qword,
                    name=name,
                    description=description,
                    severity=severity,
                    remediate=remediate,
                    noncompliant_when_not_found=noncompliant_if_missing,
                    is_64bit=is_64bit,
                ),
            ]
        mode = _resolve_mode(document, source_id, ci, config)
        result = compose_registry_setting(values, mode, config)
    except (DcmKitError, ValidationError, ValueError, OSError, yaml.YAMLError) as e:
        raise _fail(e) from e

    _report(result, output)


@app.command()
def inspect(
    document: Path = typer.Argument(..., help="Configuration item document", exists=True, dir_okay=False),
) -> None:
    """Show the flavor, settings and rules of a configuration item document."""
    try:
        root = parse_document(document.read_text(encoding="utf-8"))
        merger = ArtifactMerger(root)
    except (DcmKitError, OSError) as e:
        raise _fail(e) from e

    settings = list(merger.iter_settings())
    rules = list(merger.iter_rules())

    table = Table(title="Configuration Item")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Flavor", merger.flavor.value)
    try:
        table.add_row("Identity", str(source_identity_of(root)))
    except DcmKitError:
        table.add_row("Identity", "(incomplete)")
    table.add_row("Settings", str(len(settings)))
    table.add_row("Rules", str(len(rules)))
    console.print(table)

    if settings:
        console.print("\n[bold]Settings:[/bold]")
        for element in settings:
            console.print(
                f"  {element.get('LogicalName')} "
                f"[dim]{local_name(element.tag)} {element.get('DataType', '')}[/dim]",
            )

    if rules:
        console.print("\n[bold]Rules:[/bold]")
        for rule in rules:
            reference = rule.find(f".//{qname(RULES_NS, 'SettingReference')}")
            target = reference.get("SettingLogicalName") if reference is not None else "?"
            console.print(f"  [yellow]{rule.get('Severity')}[/yellow] {rule.get('id')} → {target}")


@app.command()
def version() -> None:
    """Show dcmkit version information."""
    console.print(f"dcmkit version {_get_version_string()}")


def main() -> None:
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
