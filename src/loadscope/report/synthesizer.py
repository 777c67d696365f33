"""Writes every report artifact for a finished run."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from loadscope._internal.errors import ConfigError, ReportError
from loadscope._internal.logging import get_logger
from loadscope.report.html_report import render_html
from loadscope.report.json_report import render_endpoint_coverage, render_performance_data
from loadscope.report.text_report import render_text

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from loadscope.metrics.models import TestRunResult

logger = get_logger("report.synthesizer")

# Artifact name -> (default file name, renderer).
RENDERERS: dict[str, tuple[str, Callable[[TestRunResult], str]]] = {
    "json": ("performance-data.json", render_performance_data),
    "coverage": ("endpoint-coverage.json", render_endpoint_coverage),
    "text": ("performance-summary.txt", render_text),
    "html": ("performance-report.html", render_html),
}

ALL_FORMATS: tuple[str, ...] = tuple(RENDERERS)


class ReportSynthesizer:
    """Renders a TestRunResult into files under one output directory.

    Rendering reads only the result, so the same result always produces
    byte-identical files.

    Attributes:
        output_dir: Directory the artifacts are written to.
        formats: Artifact names to produce, a subset of :data:`ALL_FORMATS`.
    """

    def __init__(
        self,
        output_dir: str | Path,
        formats: Iterable[str] | None = None,
        *,
        file_names: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize the synthesizer.

        Args:
            output_dir: Destination directory, created on demand.
            formats: Artifacts to write; all of them by default.
            file_names: Per-artifact file name overrides.

        Raises:
            ConfigError: If a format or file name override is unknown.
        """
        self.output_dir = Path(output_dir)
        self.formats: tuple[str, ...] = tuple(formats) if formats is not None else ALL_FORMATS
        unknown = sorted(set(self.formats) - set(RENDERERS))
        if unknown:
            msg = f"Unknown report format(s) {unknown}; choose from {list(ALL_FORMATS)}"
            raise ConfigError(msg)
        self._file_names = {name: default for name, (default, _) in RENDERERS.items()}
        for name, file_name in (file_names or {}).items():
            if name not in RENDERERS:
                msg = f"Unknown report format {name!r} in file name overrides"
                raise ConfigError(msg)
            self._file_names[name] = file_name

    def path_for(self, fmt: str) -> Path:
        """Destination path of one artifact."""
        return self.output_dir / self._file_names[fmt]

    def render(self, result: TestRunResult, fmt: str) -> str:
        """Render one artifact to text without touching the filesystem."""
        _, renderer = RENDERERS[fmt]
        return renderer(result)

    def write(self, result: TestRunResult) -> dict[str, Path]:
        """Write every configured artifact.

        Each artifact is attempted even if an earlier one failed.

        Args:
            result: The run to report on.

        Returns:
            Mapping of artifact name to the written path.

        Raises:
            ReportError: After all attempts, if any artifact failed. Its
                ``failures`` map artifact names to error messages and its
                ``written`` attribute holds the artifacts that succeeded.
        """
        written: dict[str, Path] = {}
        failures: dict[str, str] = {}
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            failures = {fmt: f"{type(exc).__name__}: {exc}" for fmt in self.formats}
            logger.error("Cannot create report directory %s: %s", self.output_dir, exc)
            raise _report_error(failures, written) from exc

        for fmt in self.formats:
            path = self.path_for(fmt)
            try:
                path.write_text(self.render(result, fmt), encoding="utf-8")
            except (OSError, ValueError, TypeError) as exc:
                failures[fmt] = f"{type(exc).__name__}: {exc}"
                logger.error("Failed to write %s report to %s: %s", fmt, path, exc)
                continue
            written[fmt] = path
            logger.debug("Wrote %s report to %s", fmt, path)

        if failures:
            raise _report_error(failures, written)
        logger.info("Reports written to %s", self.output_dir)
        return written


def _report_error(failures: dict[str, str], written: dict[str, Path]) -> ReportError:
    names = ", ".join(sorted(failures))
    return ReportError(f"Failed to write report artifact(s): {names}", failures, written)
