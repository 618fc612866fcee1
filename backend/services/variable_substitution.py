"""Variable Substitution - message templates for automation rules.

Shared by the dispatch path (webhook) and the rule-management
preview/validation endpoints.

Templates use {placeholder} syntax. The recognised vocabulary has three groups:
- client: {cliente}/{client_name}, {email}/{client_email}, {phone}/{client_phone}
- event:  {data}/{date}, {local}/{location}, {event_name}
- staff:  {nome}/{staff_name}/{nome_staff}, {staff_role}

Substitution is permissive: after the vocabulary, any {key} matching a string
or number in the context is replaced too. Validation is strict: only the
vocabulary is accepted.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"{(\w+)}", re.ASCII)

DATE_FORMAT = "%d/%m/%Y"  # pt-BR


@dataclass(frozen=True)
class Variable:
    """One canonical placeholder, the context field backing it and its aliases."""
    key: str
    label: str
    source: str
    aliases: Tuple[str, ...] = ()
    is_date: bool = False

    @property
    def placeholders(self) -> Tuple[str, ...]:
        return (self.key,) + self.aliases


@dataclass(frozen=True)
class VariableVocabulary:
    """Immutable set of recognised variables, grouped for display."""
    groups: Tuple[Tuple[str, Tuple[Variable, ...]], ...]
    group_labels: Mapping[str, str] = field(default_factory=dict)

    def variables(self) -> List[Variable]:
        return [variable for _, variables in self.groups for variable in variables]

    def all_keys(self) -> List[str]:
        """Canonical keys followed by aliases, in declaration order."""
        keys = [variable.key for variable in self.variables()]
        for variable in self.variables():
            keys.extend(alias for alias in variable.aliases if alias not in keys)
        return keys


DEFAULT_VOCABULARY = VariableVocabulary(
    groups=(
        ("client", (
            Variable("cliente", "Nome do Cliente", "client_name", ("client_name",)),
            Variable("email", "Email do Cliente", "client_email", ("client_email",)),
            Variable("phone", "Telefone do Cliente", "client_phone", ("client_phone",)),
        )),
        ("event", (
            Variable("data", "Data do Evento", "event_date", ("date",), is_date=True),
            Variable("local", "Local do Evento", "event_location", ("location",)),
            Variable("event_name", "Nome do Evento", "event_name"),
        )),
        ("staff", (
            Variable("nome", "Nome do Funcionário", "staff_name", ("staff_name", "nome_staff")),
            Variable("staff_role", "Cargo do Funcionário", "staff_role"),
        )),
    ),
    group_labels={"client": "CLIENTE", "event": "EVENTO", "staff": "STAFF"},
)

# Sample data rendered by preview()
PREVIEW_CONTEXT: Dict[str, Any] = {
    "client_name": "João Silva",
    "client_email": "joao@example.com",
    "client_phone": "(11) 98765-4321",
    "event_date": "2026-12-15T00:00:00Z",
    "event_location": "Salão de Festas Centro",
    "event_name": "Casamento de Maria e João",
    "staff_name": "Mário",
    "staff_role": "Gerente de Eventos",
}


def format_event_date(value: Any) -> str:
    """Render a date-like value as DD/MM/YYYY.

    ISO strings keep the calendar date they carry (no timezone shift), so
    "2026-03-01" and "2026-03-01T00:00:00.000Z" both render 01/03/2026.
    Unparseable values are returned as text.
    """
    if value is None or value == "":
        return ""
    if isinstance(value, datetime):
        return value.strftime(DATE_FORMAT)
    if isinstance(value, date):
        return value.strftime(DATE_FORMAT)
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).strftime(DATE_FORMAT)
    except ValueError:
        pass
    try:
        return datetime.strptime(text[:10], "%Y-%m-%d").strftime(DATE_FORMAT)
    except ValueError:
        logger.debug(f"Unparseable event date left as is: {text}")
        return text


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _is_passthrough_value(value: Any) -> bool:
    return isinstance(value, (str, int, float)) and not isinstance(value, bool)


class VariableSubstitution:
    """Renders, validates and previews message templates for one vocabulary."""

    def __init__(self, vocabulary: VariableVocabulary = DEFAULT_VOCABULARY):
        self.vocabulary = vocabulary
        self._known_keys = frozenset(vocabulary.all_keys())

    def substitute(self, template: str, context: Optional[Mapping[str, Any]] = None) -> str:
        """Render template against context. Never raises."""
        if not template:
            return ""
        context = context or {}
        result = template

        for variable in self.vocabulary.variables():
            raw = context.get(variable.source)
            value = format_event_date(raw) if variable.is_date else _stringify(raw)
            for placeholder in variable.placeholders:
                result = result.replace("{" + placeholder + "}", value)

        # Ad hoc variables passed straight from the context
        for key, value in context.items():
            if _is_passthrough_value(value):
                result = result.replace("{" + str(key) + "}", _stringify(value))

        return result

    def validate(self, template: str) -> Dict[str, Any]:
        errors: List[str] = []
        found: List[str] = []

        for match in PLACEHOLDER_PATTERN.finditer(template or ""):
            name = match.group(1)
            if name in found:
                continue
            found.append(name)
            if name not in self._known_keys:
                errors.append(f"Invalid variable: {{{name}}}")

        return {
            "valid": not errors,
            "errors": errors,
            "variables_found": found,
        }

    def preview(self, template: str) -> str:
        return self.substitute(template, PREVIEW_CONTEXT)

    def all_keys(self) -> List[str]:
        return self.vocabulary.all_keys()

    def hints(self) -> str:
        """One line per group, e.g. "CLIENTE: {cliente}, {email}, {phone}"."""
        lines = []
        for group, variables in self.vocabulary.groups:
            label = self.vocabulary.group_labels.get(group, group.upper())
            lines.append(f"{label}: " + ", ".join("{" + v.key + "}" for v in variables))
        return "\n".join(lines)

    def describe(self) -> Dict[str, List[Dict[str, Any]]]:
        """Vocabulary as JSON-friendly groups for the rule editor."""
        return {
            group: [
                {"key": v.key, "label": v.label, "aliases": list(v.aliases)}
                for v in variables
            ]
            for group, variables in self.vocabulary.groups
        }


# Singleton instance
variable_substitution = VariableSubstitution()
