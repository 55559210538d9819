"""Typer CLI entrypoint for docprofile-agent."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Annotated, Any, Literal, NoReturn, cast

import typer

from apps.cli.io import (
    OutputPaths,
    build_output_paths,
    existing_output_files,
    load_json_object,
    write_assembly_output_atomic,
    write_generated_output_atomic,
)
from core.orchestrator.factory import build_service
from core.orchestrator.pipeline import DocumentProfileService
from core.profiles.models import VariantSpec
from core.profiles.variants import VariantResult
from core.templates.marker_extractor import extract_document_text
from core.utils.errors import CoreError

app = typer.Typer(help="Document Profile Agent CLI", rich_markup_mode=None)
variant_app = typer.Typer(help="Manage profile variants", rich_markup_mode=None)
app.add_typer(variant_app, name="variant")

MissingPolicy = Literal["empty", "keep"]


@app.callback()
def cli_callback(
    ctx: typer.Context,
    data_dir: Annotated[
        Path | None,
        typer.Option("--data-dir", help="Stores root; defaults to DOCPROFILE_DATA_DIR."),
    ] = None,
) -> None:
    """Template marker profiles and document assembly."""

    ctx.obj = {"data_dir": data_dir}


@app.command("extract")
def extract_command(
    ctx: typer.Context,
    template: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    save_as: Annotated[
        str | None,
        typer.Option("--save-as", help="Store the template and its fields under this id."),
    ] = None,
) -> None:
    """List the markers of a .docx template."""

    try:
        service = _service(ctx)
        content = template.read_bytes()
        if save_as is not None:
            fields = service.extract_template(save_as, content)
            _echo_json({"template_id": save_as, "fields": [asdict(item) for item in fields]})
            return
        variables = service.extract_variables(extract_document_text(content))
        _echo_json({"variables": [asdict(item) for item in variables]})
    except (CoreError, ValueError, OSError) as exc:
        _fail(exc)


@app.command("analyze")
def analyze_command(
    ctx: typer.Context,
    template_id: Annotated[str, typer.Option("--template-id")],
    template: Annotated[
        Path | None, typer.Option(exists=True, dir_okay=False, file_okay=True)
    ] = None,
) -> None:
    """Classify markers by role and suggest entity attributes."""

    try:
        service = _service(ctx)
        if template is None:
            analysis = service.analyze_stored_template(template_id)
        else:
            analysis = service.analyze_template(template_id, template.read_bytes())
        _echo_json(analysis.model_dump(mode="json"))
    except (CoreError, ValueError, OSError) as exc:
        _fail(exc)


@app.command("autofill")
def autofill_command(
    ctx: typer.Context,
    entity: Annotated[str, typer.Option("--entity")],
    template_id: Annotated[str, typer.Option("--template-id")],
    role: Annotated[str, typer.Option("--role")],
    template: Annotated[
        Path | None, typer.Option(exists=True, dir_okay=False, file_okay=True)
    ] = None,
) -> None:
    """Create or refresh the profile of an entity acting in one template role."""

    try:
        service = _service(ctx)
        content = template.read_bytes() if template is not None else None
        profile = service.auto_fill_profile(entity, template_id, role, content=content)
        _echo_json(profile.model_dump(mode="json"))
    except (CoreError, ValueError, OSError) as exc:
        _fail(exc)


@app.command("assemble")
def assemble_command(
    ctx: typer.Context,
    template: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    values: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    out_dir: Annotated[Path, typer.Option()] = Path("."),
    missing_policy: Annotated[str, typer.Option()] = "empty",
    no_overwrite: Annotated[
        bool, typer.Option("--no-overwrite", help="Fail when outputs already exist.")
    ] = False,
) -> None:
    """Merge a JSON value map into a template and write out.docx plus its report."""

    policy = _parse_missing_policy(missing_policy)
    paths = build_output_paths(out_dir)
    _check_outputs(paths, no_overwrite)

    try:
        service = _service(ctx)
        result = service.assemble_document(
            template.read_bytes(), load_json_object(values), missing_policy=policy
        )
        write_assembly_output_atomic(paths, result)
    except (CoreError, ValueError, OSError) as exc:
        _fail(exc)

    for warning in result.warnings:
        typer.echo(f"WARNING(missing): {warning.message} (count={warning.occurrences})")
    typer.echo(
        "INFO: replaced="
        f"{result.summary.replaced_count} missing={result.summary.missing_count}"
    )
    typer.echo("INFO: success")


@app.command("generate")
def generate_command(
    ctx: typer.Context,
    profile: Annotated[str, typer.Option("--profile")],
    variant: Annotated[str | None, typer.Option("--variant")] = None,
    overrides: Annotated[
        Path | None, typer.Option(exists=True, dir_okay=False, file_okay=True)
    ] = None,
    out_dir: Annotated[Path, typer.Option()] = Path("."),
    missing_policy: Annotated[str, typer.Option()] = "empty",
    no_overwrite: Annotated[
        bool, typer.Option("--no-overwrite", help="Fail when outputs already exist.")
    ] = False,
) -> None:
    """Generate a document from a stored profile (or one of its variants)."""

    policy = _parse_missing_policy(missing_policy)
    paths = build_output_paths(out_dir)
    _check_outputs(paths, no_overwrite)

    try:
        service = _service(ctx)
        override_map = load_json_object(overrides) if overrides is not None else None
        generated = service.generate_document(
            profile, variant_id=variant, overrides=override_map, missing_policy=policy
        )
        write_generated_output_atomic(paths, generated)
    except (CoreError, ValueError, OSError) as exc:
        _fail(exc)

    for warning in generated.warnings:
        typer.echo(f"WARNING(missing): {warning.message} (count={warning.occurrences})")
    typer.echo(f"INFO: artifact={generated.artifact_ref}")
    typer.echo("INFO: success")


@variant_app.command("create")
def variant_create_command(
    ctx: typer.Context,
    profile: Annotated[str, typer.Option("--profile")],
    name: Annotated[str, typer.Option("--name")],
    description: Annotated[str, typer.Option("--description")] = "",
    tag: Annotated[list[str] | None, typer.Option("--tag")] = None,
    default: Annotated[bool, typer.Option("--default")] = False,
) -> None:
    """Create a variant from the profile's current mappings."""

    try:
        result = _service(ctx).create_variant(
            profile,
            VariantSpec(
                variant_name=name,
                variant_description=description,
                context_tags=list(tag or []),
                is_default=default,
            ),
        )
    except (CoreError, ValueError) as exc:
        _fail(exc)
    _echo_variant(result)


@variant_app.command("list")
def variant_list_command(
    ctx: typer.Context,
    profile: Annotated[str, typer.Option("--profile")],
    include_inactive: Annotated[bool, typer.Option("--all")] = False,
) -> None:
    """List variants of a profile."""

    try:
        loaded = _service(ctx).get_profile(profile)
    except (CoreError, ValueError) as exc:
        _fail(exc)

    variants = loaded.variants if include_inactive else loaded.active_variants
    for item in variants:
        marker = "*" if item.is_default else " "
        state = "" if item.active else " (inactive)"
        typer.echo(
            f"{marker} {item.id} {item.variant_name} "
            f"{item.completeness.percentage}% used={item.usage_count}{state}"
        )


@variant_app.command("set-default")
def variant_set_default_command(
    ctx: typer.Context,
    profile: Annotated[str, typer.Option("--profile")],
    variant: Annotated[str, typer.Option("--variant")],
) -> None:
    """Make a variant the profile default."""

    try:
        result = _service(ctx).set_default_variant(profile, variant)
    except (CoreError, ValueError) as exc:
        _fail(exc)
    _echo_variant(result)


@variant_app.command("clone")
def variant_clone_command(
    ctx: typer.Context,
    profile: Annotated[str, typer.Option("--profile")],
    variant: Annotated[str, typer.Option("--variant")],
    name: Annotated[str, typer.Option("--name")],
) -> None:
    """Copy a variant's mappings and tags under a new name."""

    try:
        result = _service(ctx).clone_variant(profile, variant, name)
    except (CoreError, ValueError) as exc:
        _fail(exc)
    _echo_variant(result)


@variant_app.command("delete")
def variant_delete_command(
    ctx: typer.Context,
    profile: Annotated[str, typer.Option("--profile")],
    variant: Annotated[str, typer.Option("--variant")],
) -> None:
    """Deactivate a variant; the last active one cannot be deleted."""

    try:
        result = _service(ctx).delete_variant(profile, variant)
    except (CoreError, ValueError) as exc:
        _fail(exc)
    _echo_variant(result)


def _service(ctx: typer.Context) -> DocumentProfileService:
    obj = cast(dict[str, Any], ctx.find_root().obj or {})
    service = build_service(obj.get("data_dir"))
    ctx.call_on_close(service.close)
    return service


def _parse_missing_policy(value: str) -> MissingPolicy:
    normalized = value.lower().strip()
    if normalized not in {"empty", "keep"}:
        typer.echo("ERROR: --missing-policy must be one of: empty, keep.")
        raise typer.Exit(code=1)
    return cast(MissingPolicy, normalized)


def _check_outputs(paths: OutputPaths, no_overwrite: bool) -> None:
    existing = existing_output_files(paths)
    if not existing:
        return
    if no_overwrite:
        typer.echo("ERROR: outputs already exist and --no-overwrite is enabled.")
        raise typer.Exit(code=1)
    names = ", ".join(path.name for path in existing)
    typer.echo(f"INFO: overwriting existing outputs: {names}")


def _echo_variant(result: VariantResult) -> None:
    _echo_json(
        {
            "profile_id": result.profile.id,
            "variant": result.variant.model_dump(mode="json"),
            "profile_completeness": result.profile.completeness.model_dump(mode="json"),
        }
    )


def _echo_json(payload: dict[str, Any]) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True))


def _fail(exc: Exception) -> NoReturn:
    typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
    raise typer.Exit(code=1)


def main() -> None:
    """Console script entrypoint."""

    app()


if __name__ == "__main__":
    main()
