"""Typer CLI entrypoint for lambda_pack."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
import yaml

from lambda_pack.config import AppSettings, load_settings
from lambda_pack.consistency.checks import format_consistency_report, run_consistency_checks
from lambda_pack.errors import LambdaPackError
from lambda_pack.logging_utils import configure_logging
from lambda_pack.pipeline import run_build_pipeline
from lambda_pack.registry.descriptors import build_registry
from lambda_pack.resolve.manifest import DependencySet, load_dependency_set
from lambda_pack.validate.engine import validate_artifact
from lambda_pack.validate.reports import format_report
from lambda_pack.validate.rules import build_classification_rules, classify_import_error

app = typer.Typer(
    add_completion=False,
    help="lambda_pack command line interface.",
    no_args_is_help=True,
)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    help="Optional settings YAML path.",
    exists=False,
    file_okay=True,
    dir_okay=False,
    readable=True,
)


def _load_and_optionally_configure_logger(
    config_file: Path | None,
    configure: bool,
) -> tuple[AppSettings, logging.Logger]:
    settings = load_settings(config_file=config_file)
    if configure:
        logger = configure_logging(settings.paths.logs_root / "lambda_pack.log")
    else:
        logger = logging.getLogger("lambda_pack")
    return settings, logger


@app.command("show-config")
def show_config(config_file: Path | None = CONFIG_FILE_OPTION) -> None:
    """Print the effective configuration after env overrides."""

    settings, _ = _load_and_optionally_configure_logger(config_file, configure=False)
    rendered = yaml.safe_dump(settings.as_dict(), sort_keys=False)
    typer.echo(rendered)


@app.command("list-packages")
def list_packages(config_file: Path | None = CONFIG_FILE_OPTION) -> None:
    """Print every registered package and its naming contract."""

    settings, _ = _load_and_optionally_configure_logger(config_file, configure=False)
    registry = build_registry(settings)
    for descriptor in registry.values():
        libs = ", ".join(descriptor.required_shared_libs) or "-"
        typer.echo(
            f"{descriptor.name}: handler={descriptor.published_handler} "
            f"source={descriptor.source_handler} archive={descriptor.archive_name} libs={libs}"
        )


@app.command("build")
def build(
    package: str = typer.Argument(..., help="Registered package name."),
    source_dir: Path = typer.Argument(..., help="Upstream root holding source/<package>/ and source/lib/."),
    output_dir: Path | None = typer.Argument(None, help="Archive output directory (defaults to paths.output_root)."),
    no_summary: bool = typer.Option(
        False,
        "--no-summary",
        help="Skip writing run summary artifacts.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Resolve, assemble, archive and validate one package."""

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=True)
    result = run_build_pipeline(
        settings,
        package,
        source_dir,
        output_dir or settings.paths.output_root,
        write_summary=not no_summary,
        logger=logger,
    )

    if result.report is not None:
        typer.echo(format_report(result.report, title=f"Validation: {package}"))
    typer.echo(f"run_id: {result.run_id}")
    typer.echo(f"state: {result.state}")
    typer.echo(f"stages_completed: {', '.join(result.stages_completed) or '-'}")
    if result.artifact is not None:
        typer.echo(f"archive: {result.artifact.path}")
        typer.echo(f"size_mb: {result.artifact.size_mb:.2f}")
    if result.summary_path is not None:
        typer.echo(f"summary_path: {result.summary_path}")
    if result.error is not None:
        typer.echo(result.error.render(), err=True)
    raise typer.Exit(code=result.exit_code)


@app.command("validate-archive")
def validate_archive(
    package: str = typer.Argument(..., help="Registered package name."),
    archive: Path = typer.Argument(..., help="Existing archive to validate."),
    source_dir: Path | None = typer.Option(
        None,
        "--source-dir",
        help="Package source directory whose manifest supplies the dependency set.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Run only the validation battery against an existing archive."""

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=True)
    try:
        descriptor = build_registry(settings).resolve(package)
        dependency_set: DependencySet | None = None
        if source_dir is not None:
            dependency_set = load_dependency_set(
                source_dir,
                settings.resolver.import_name_overrides,
                logger=logger,
            )
    except LambdaPackError as exc:
        typer.echo(exc.render(), err=True)
        raise typer.Exit(code=1) from exc

    report = validate_artifact(
        archive,
        descriptor,
        settings.validation,
        settings.build,
        settings.paths.workspace_root / f"validate_{descriptor.name}",
        dependency_set=dependency_set,
        logger=logger,
    )
    typer.echo(format_report(report, title=f"Validation: {archive}"))
    raise typer.Exit(code=0 if report.passed else 1)


@app.command("classify-error")
def classify_error(
    error_text: str = typer.Argument(..., help="Import error text to classify."),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Print the verdict the import-check rules assign to an error text."""

    settings, _ = _load_and_optionally_configure_logger(config_file, configure=False)
    rules = build_classification_rules(
        settings.validation.runtime_config_signatures,
        settings.validation.runtime_allowlist,
    )
    classification = classify_import_error(error_text, rules)
    typer.echo(f"verdict: {classification.verdict}")
    typer.echo(f"rule: {classification.rule}")
    if classification.missing_module is not None:
        typer.echo(f"missing_module: {classification.missing_module}")


@app.command("check-consistency")
def check_consistency(
    repo_root: Path = typer.Argument(Path("."), help="Repository checkout to audit."),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Cross-check infrastructure config, build tooling and built archives."""

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=True)
    result = run_consistency_checks(repo_root.resolve(), settings, logger=logger)
    typer.echo(format_consistency_report(result))
    raise typer.Exit(code=result.exit_code)


if __name__ == "__main__":
    app()
