"""Pipeline configuration loading for mailqa-runner.

A pipeline config names the template directory, the base template and its
variants, the failure policy, and the AI and render settings in a single
YAML file.

Example YAML:
    pipeline:
      templates_dir: "templates/emails"
      output_dir: "output"
      base_template: "site_visitor_welcome"
      mode: strict
      policy: regression

    templates:
      - name: "site_visitor_welcome_copy"
        expected_difference: none
      - name: "site_visitor_welcome_partner_a"
        expected_difference: styling

    ai:
      model: "claude-sonnet-4-20250514"
      max_tokens: 4096

    variables:
      companyName: "Carebox"

Environment variables:
    MAILQA_MODE: Overrides pipeline.mode ("strict" or "lenient").
    MAILQA_TEMPLATES: Comma-separated template subset to run.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from mailqa_core.errors import ConfigError
from mailqa_core.types.common import DifferenceType, TestMode
from mailqa_agents.client import DEFAULT_MODEL

DEFAULT_BASE_TEMPLATE = "site_visitor_welcome"

DEFAULT_VARIANTS = (
    ("site_visitor_welcome_copy", DifferenceType.NONE),
    ("site_visitor_welcome_partner_a", DifferenceType.STYLING),
    ("site_visitor_welcome_partner_b", DifferenceType.CONTENT),
)

DEFAULT_VARIABLES: dict[str, Any] = {
    "companyName": "Carebox",
    "companyAddress": "123 Main Street, San Francisco, CA 94102",
    "supportEmail": "support@example.com",
    "visitorName": "Valued Visitor",
    "ctaUrl": "https://example.com/get-started",
    "privacyUrl": "https://example.com/privacy",
    "termsUrl": "https://example.com/terms",
    "unsubscribeUrl": "https://example.com/unsubscribe",
}


@dataclass(frozen=True)
class VariantEntry:
    """A variant template compared against the base.

    Attributes:
        name: Template name (file stem).
        expected_difference: Declared difference relative to the base.
    """

    name: str
    expected_difference: DifferenceType = DifferenceType.NONE


@dataclass(frozen=True)
class AiSettings:
    """Text-completion settings.

    Attributes:
        model: Model identifier used by every agent.
        max_tokens: Default response budget.
        planner_max_tokens: Response budget for the planner.
        reporter_max_tokens: Response budget for the report generator.
        temperature: Sampling temperature.
    """

    model: str = DEFAULT_MODEL
    max_tokens: int = 4096
    planner_max_tokens: int = 8192
    reporter_max_tokens: int = 8192
    temperature: float = 0.0


@dataclass(frozen=True)
class RenderSettings:
    """Browser render settings.

    Attributes:
        viewport_width: Viewport width in pixels.
        viewport_height: Viewport height in pixels.
        full_page: Capture the full scrollable page.
        label_height: Caption band above side-by-side panels.
    """

    viewport_width: int = 800
    viewport_height: int = 600
    full_page: bool = True
    label_height: int = 0


@dataclass(frozen=True)
class PipelineConfig:
    """Complete pipeline configuration.

    Attributes:
        templates_dir: Directory holding the ``*.mjml`` sources.
        output_dir: Root of all run artifacts.
        base_template: Name of the reference template.
        variants: Variant templates in report order.
        mode: Failure policy.
        regression: Comparison policy. True fails any difference from the base;
            False accepts a variant's declared expected difference.
        visual_threshold_percent: Maximum pixel diff for visual matches.
        size_limit_kb: HTML size limit.
        selected: Template subset to run, or None for all.
        ai: Text-completion settings.
        render: Browser render settings.
        variables: Template variable context.
    """

    templates_dir: Path
    output_dir: Path
    base_template: str = DEFAULT_BASE_TEMPLATE
    variants: tuple[VariantEntry, ...] = ()
    mode: TestMode = TestMode.STRICT
    regression: bool = True
    visual_threshold_percent: float = 2.0
    size_limit_kb: float = 102.0
    selected: tuple[str, ...] | None = None
    ai: AiSettings = field(default_factory=AiSettings)
    render: RenderSettings = field(default_factory=RenderSettings)
    variables: Mapping[str, Any] = field(default_factory=lambda: dict(DEFAULT_VARIABLES))

    @property
    def template_names(self) -> list[str]:
        """Return the base template followed by the variants."""
        return [self.base_template, *(v.name for v in self.variants)]

    @property
    def variant_names(self) -> list[str]:
        """Return the variant template names in order."""
        return [v.name for v in self.variants]

    def expected_difference(self, name: str) -> DifferenceType:
        """Return the declared difference of a template (NONE for the base)."""
        for variant in self.variants:
            if variant.name == name:
                return variant.expected_difference
        return DifferenceType.NONE

    def template_path(self, name: str) -> Path:
        """Return the source path of a template."""
        return self.templates_dir / f"{name}.mjml"

    def selected_templates(self) -> list[str]:
        """Return the templates to run, in configuration order."""
        if self.selected is None:
            return self.template_names
        chosen = set(self.selected)
        return [name for name in self.template_names if name in chosen]

    def with_overrides(
        self,
        mode: TestMode | None = None,
        selected: list[str] | None = None,
    ) -> PipelineConfig:
        """Return a copy with the mode and template subset replaced."""
        return replace(
            self,
            mode=mode if mode is not None else self.mode,
            selected=tuple(selected) if selected is not None else self.selected,
        )

    @classmethod
    def default(cls, root: str | Path = ".") -> PipelineConfig:
        """Build the default configuration rooted at a directory.

        Args:
            root: Project root containing ``templates/emails``.

        Returns:
            Default PipelineConfig with environment overrides applied.
        """
        root = Path(root)
        config = cls(
            templates_dir=root / "templates" / "emails",
            output_dir=root / "output",
            variants=tuple(VariantEntry(name, diff) for name, diff in DEFAULT_VARIANTS),
        )
        return _apply_environment(config)


def parse_mode(value: str) -> TestMode:
    """Parse a failure policy name.

    Raises:
        ConfigError: If the value is not "strict" or "lenient".
    """
    try:
        return TestMode(str(value).strip().lower())
    except ValueError as exc:
        raise ConfigError(f"Invalid mode: {value!r} (expected strict or lenient)") from exc


def parse_template_list(value: str) -> list[str]:
    """Split a comma-separated template list, dropping ``.mjml`` suffixes."""
    names = []
    for item in value.split(","):
        name = item.strip()
        if name.endswith(".mjml"):
            name = name[: -len(".mjml")]
        if name:
            names.append(name)
    return names


def _apply_environment(config: PipelineConfig) -> PipelineConfig:
    mode_env = os.environ.get("MAILQA_MODE")
    templates_env = os.environ.get("MAILQA_TEMPLATES")
    return config.with_overrides(
        mode=parse_mode(mode_env) if mode_env else None,
        selected=parse_template_list(templates_env) if templates_env else None,
    )


def parse_policy(value: str) -> bool:
    """Parse a comparison policy name, returning True for regression.

    Raises:
        ConfigError: If the value is not "regression" or "expected_variation".
    """
    policy = str(value).strip().lower()
    if policy not in ("regression", "expected_variation"):
        raise ConfigError(f"Invalid policy: {value!r} (expected regression or expected_variation)")
    return policy == "regression"


def _parse_difference(value: Any, name: str) -> DifferenceType:
    try:
        return DifferenceType(str(value).lower())
    except ValueError as exc:
        raise ConfigError(f"Invalid expected_difference for {name}: {value!r}") from exc


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"{key} must be a mapping")
    return section


def _number(section: Mapping[str, Any], key: str, default: float, kind: type = float) -> Any:
    value = section.get(key, default)
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number, got {value!r}") from None


def load_pipeline_config(path: str | Path) -> PipelineConfig:
    """Load pipeline configuration from a YAML file.

    Relative directories are resolved against the config file's directory.

    Args:
        path: Path to the pipeline configuration YAML file.

    Returns:
        Parsed PipelineConfig with environment overrides applied.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ConfigError: If fields are missing or invalid.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Pipeline config not found: {path}")

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ConfigError("Pipeline config must be a YAML mapping")

    root = path.parent

    # Parse pipeline section
    pipeline = _section(data, "pipeline")
    templates_dir = pipeline.get("templates_dir")
    if not templates_dir:
        raise ConfigError("Missing required field: pipeline.templates_dir")
    base_template = pipeline.get("base_template", DEFAULT_BASE_TEMPLATE)

    # Parse templates section
    templates_data = data.get("templates", [])
    if not isinstance(templates_data, list):
        raise ConfigError("templates must be a list")

    variants: list[VariantEntry] = []
    for entry in templates_data:
        if not isinstance(entry, dict):
            raise ConfigError("Each template must be a mapping")
        name = entry.get("name")
        if not name:
            raise ConfigError("Template missing required field: name")
        if name == base_template:
            raise ConfigError(f"Template {name} is the base template and cannot be a variant")
        variants.append(
            VariantEntry(
                name=name,
                expected_difference=_parse_difference(
                    entry.get("expected_difference", "none"), name
                ),
            )
        )

    # Parse ai and render sections
    ai_data = _section(data, "ai")
    ai = AiSettings(
        model=ai_data.get("model", DEFAULT_MODEL),
        max_tokens=_number(ai_data, "max_tokens", 4096, int),
        planner_max_tokens=_number(ai_data, "planner_max_tokens", 8192, int),
        reporter_max_tokens=_number(ai_data, "reporter_max_tokens", 8192, int),
        temperature=_number(ai_data, "temperature", 0.0),
    )

    render_data = _section(data, "render")
    viewport = _section(render_data, "viewport")
    render = RenderSettings(
        viewport_width=_number(viewport, "width", 800, int),
        viewport_height=_number(viewport, "height", 600, int),
        full_page=bool(render_data.get("full_page", True)),
        label_height=_number(render_data, "label_height", 0, int),
    )

    variables = dict(DEFAULT_VARIABLES)
    variables.update(_section(data, "variables"))

    config = PipelineConfig(
        templates_dir=root / templates_dir,
        output_dir=root / pipeline.get("output_dir", "output"),
        base_template=base_template,
        variants=tuple(variants),
        mode=parse_mode(pipeline.get("mode", "strict")),
        regression=parse_policy(pipeline.get("policy", "regression")),
        visual_threshold_percent=_number(pipeline, "visual_threshold_percent", 2.0),
        size_limit_kb=_number(pipeline, "size_limit_kb", 102),
        ai=ai,
        render=render,
        variables=variables,
    )
    return _apply_environment(config)
