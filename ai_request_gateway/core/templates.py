"""
Prompt templates for gateway operations.

Each operation renders its prompt from a fixed template. Every substituted
field is capped so prompt size, and therefore cost, stays bounded no matter
how large the caller's input is.
"""

from dataclasses import dataclass, field
from string import Template
from typing import Any, Dict, Mapping, Optional

from .errors import TemplateNotFound


@dataclass(frozen=True)
class PromptTemplate:
    """Named prompt shape with fixed generation settings."""
    name: str
    template: str
    max_tokens: int
    temperature: float
    field_limits: Mapping[str, int] = field(default_factory=dict)
    defaults: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        """Validate generation settings."""
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")
        if not 0 <= self.temperature <= 2:
            raise ValueError("temperature must be between 0 and 2")

    def render(self, fields: Mapping[str, Any]) -> str:
        """Substitute capped field values into the template."""
        values: Dict[str, str] = {}
        for name, limit in self.field_limits.items():
            value = fields.get(name)
            if value is None or value == "":
                value = self.defaults.get(name, "")
            values[name] = str(value)[:limit]
        # JSON examples in the templates contain literal braces, so only
        # ${name} placeholders are substituted
        return Template(self.template).safe_substitute(values)


class TemplateRegistry:
    """Lookup table of prompt templates keyed by operation name."""

    def __init__(self, templates: Optional[Mapping[str, PromptTemplate]] = None):
        self._templates: Dict[str, PromptTemplate] = dict(templates or {})

    def register(self, template: PromptTemplate) -> None:
        if template.name in self._templates:
            raise ValueError(f"Template already registered: {template.name}")
        self._templates[template.name] = template

    def get(self, name: str) -> PromptTemplate:
        """Return the template registered under name.

        Raises:
            TemplateNotFound: If name is not registered
        """
        try:
            return self._templates[name]
        except KeyError:
            raise TemplateNotFound(name) from None

    def render(self, name: str, fields: Mapping[str, Any]) -> str:
        """Render the named template with the given fields."""
        return self.get(name).render(fields)


ISSUE_SUMMARY = PromptTemplate(
    name="issue_summary",
    template=(
        'Analyze A&E issue: "${description}"\n'
        "Context: ${industry}, ${size} staff, Dept: ${department}, Category: ${category}\n"
        'JSON: {"summary":"2-3 sentences","rootCauses":["top 3"],'
        '"impact":"specific","recommendations":["3-4"],"confidence":85}'
    ),
    max_tokens=300,
    temperature=0.3,
    field_limits={
        "description": 500,
        "industry": 50,
        "size": 20,
        "department": 100,
        "category": 100,
    },
    defaults={"industry": "A&E", "size": "unknown", "department": "Unknown", "category": "General"},
)

CLUSTER_SUMMARY = PromptTemplate(
    name="cluster_summary",
    template=(
        'A&E cluster: "${name}" - ${description}\n'
        "Issues (${count}): ${issue_list}\n"
        'JSON: {"consolidatedSummary":"exec overview","crossIssuePatterns":["3-4"],'
        '"strategicPriority":"HIGH/MED/LOW","initiativeRecommendations":["3-4"],'
        '"confidence":90}'
    ),
    max_tokens=400,
    temperature=0.4,
    field_limits={"name": 100, "description": 200, "count": 10, "issue_list": 600},
    defaults={"count": "0"},
)

REQUIREMENTS_GENERATION = PromptTemplate(
    name="requirements_generation",
    template=(
        'Initiative: "${title}" Goal: "${goal}" Summary: "${summary}"\n'
        "Context: ${industry} A&E firm\n"
        'JSON: {"cards":[{"title":"req title","description":"detailed desc",'
        '"type":"BUSINESS|FUNCTIONAL|ACCEPTANCE",'
        '"priority":"LOW|MEDIUM|HIGH|CRITICAL","category":"group"}],"confidence":85}'
    ),
    max_tokens=500,
    temperature=0.3,
    field_limits={"title": 100, "goal": 200, "summary": 300, "industry": 50},
    defaults={"industry": "A&E"},
)

INITIATIVE_RECOMMENDATIONS = PromptTemplate(
    name="initiative_recommendations",
    template=(
        'For initiative "${title}" addressing "${problem}", '
        "provide implementation recommendations in 200 words or less."
    ),
    max_tokens=300,
    temperature=0.5,
    field_limits={"title": 100, "problem": 200},
)

DEFAULT_TEMPLATES = TemplateRegistry({
    t.name: t for t in (
        ISSUE_SUMMARY,
        CLUSTER_SUMMARY,
        REQUIREMENTS_GENERATION,
        INITIATIVE_RECOMMENDATIONS,
    )
})


def render(operation_name: str, fields: Mapping[str, Any]) -> str:
    """Render a built-in template.

    Raises:
        TemplateNotFound: If operation_name has no template
    """
    return DEFAULT_TEMPLATES.render(operation_name, fields)
