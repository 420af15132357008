"""QuestionCatalog — loads the questionnaire YAML into typed models.

The catalog is static configuration: loaded once, never mutated.  It holds
the ordered question list, the sections, the skip rules (indexed by
``RuleKey``) and the ids of the representative questions used for the
final report.

Usage::

    catalog = QuestionCatalog()     # defaults to v1/questionnaire.yaml
    catalog.load()

    q = catalog.get("q8")
    rule = catalog.rule_for("q1", "government")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterator, Optional

import yaml
from pydantic import ValidationError

from survey_flow.errors import CatalogError, QuestionNotFoundError
from survey_flow.models.question import Question, ReportQuestions, Section
from survey_flow.models.rule import RouteToRange, RuleKey, SkipRule, normalise_trigger

logger = logging.getLogger(__name__)

DEFAULT_CATALOG = Path("v1") / "questionnaire.yaml"


# ---------------------------------------------------------------------------
# Utility helpers
# ---------------------------------------------------------------------------

def find_repo_root(start: Optional[Path] = None) -> Path:
    """Walk upwards from *start* to find the repo root (dir with pyproject.toml or .git).

    Falls back to cwd if no marker is found.
    """
    p = (start or Path(__file__).resolve()).parent
    for parent in [p, *p.parents]:
        if (parent / "pyproject.toml").exists() or (parent / ".git").exists():
            return parent
    return Path.cwd()


def load_yaml(path: Path | str) -> Any:
    """Load a single YAML file and return the parsed contents."""
    if isinstance(path, str):
        path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing YAML file: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


# ---------------------------------------------------------------------------
# QuestionCatalog
# ---------------------------------------------------------------------------

class QuestionCatalog:
    """Ordered questions, sections and skip rules with fast lookup.

    Attributes populated after :meth:`load` (or :meth:`from_dict`):

        version              — catalog version tag
        questions            — list[Question] in declaration order
        sections             — dict[id, Section] in declaration order
        rules                — dict[RuleKey, SkipRule]
        stakeholder_question — id of the question whose answer is the
                               respondent's stakeholder type (or None)
        report               — ReportQuestions (representative ids)
    """

    def __init__(self, path: str | Path | None = None) -> None:
        if path is None:
            path = find_repo_root() / DEFAULT_CATALOG
        self._path = Path(path)

        # Populated by load()
        self.version: str = ""
        self.questions: list[Question] = []
        self.sections: dict[str, Section] = {}
        self.rules: dict[RuleKey, SkipRule] = {}
        self.stakeholder_question: Optional[str] = None
        self.report: ReportQuestions = ReportQuestions()

        self._by_id: dict[str, Question] = {}
        self._position: dict[str, int] = {}
        # Rules grouped by their source question, in declaration order
        self._rules_from: dict[str, list[SkipRule]] = {}

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Parse the catalog YAML into typed models.

        Raises ``FileNotFoundError`` if the file is missing and
        ``CatalogError`` if its contents are invalid.
        """
        raw = load_yaml(self._path)
        if not isinstance(raw, dict):
            raise CatalogError(f"Catalog {self._path} must be a mapping")
        self._populate(raw)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QuestionCatalog":
        """Build a catalog from an already-parsed mapping (tests, embedded data)."""
        catalog = cls(path=Path("<memory>"))
        catalog._populate(data)
        return catalog

    def _populate(self, raw: dict[str, Any]) -> None:
        try:
            sections = [Section(**s) for s in raw.get("sections") or []]
            questions = [Question(**q) for q in raw.get("questions") or []]
            rules = [SkipRule(**r) for r in raw.get("skip_logic") or []]
            report = ReportQuestions(**(raw.get("report") or {}))
        except ValidationError as exc:
            raise CatalogError(f"Invalid catalog {self._path}: {exc}") from exc

        self.version = str(raw.get("version", ""))
        self.stakeholder_question = raw.get("stakeholder_question")
        self.report = report

        self._load_sections(sections)
        self._load_questions(questions)
        self._load_rules(rules)
        self._check_references()

        logger.info(
            "QuestionCatalog loaded: version=%s, %d sections, %d questions, %d rules",
            self.version or "-",
            len(self.sections),
            len(self.questions),
            len(self.rules),
        )

    def _load_sections(self, sections: list[Section]) -> None:
        self.sections = {}
        for section in sections:
            if section.id in self.sections:
                raise CatalogError(f"Duplicate section id: {section.id}")
            self.sections[section.id] = section

    def _load_questions(self, questions: list[Question]) -> None:
        """Index questions and derive each section's ordered question ids."""
        if not questions:
            raise CatalogError("Catalog has no questions")

        self.questions = []
        self._by_id = {}
        self._position = {}
        members: dict[str, list[str]] = {sid: [] for sid in self.sections}

        for q in questions:
            if q.id in self._by_id:
                raise CatalogError(f"Duplicate question id: {q.id}")
            if q.section not in self.sections:
                raise CatalogError(f"Question {q.id} references unknown section '{q.section}'")
            self._position[q.id] = len(self.questions)
            self.questions.append(q)
            self._by_id[q.id] = q
            members[q.section].append(q.id)

        self.sections = {
            sid: section.model_copy(update={"question_ids": members[sid]})
            for sid, section in self.sections.items()
        }

    def _load_rules(self, rules: list[SkipRule]) -> None:
        self.rules = {}
        self._rules_from = {}
        for rule in rules:
            if rule.key in self.rules:
                raise CatalogError(
                    f"Duplicate skip rule for question {rule.question_id} "
                    f"value '{rule.trigger_value}'"
                )
            self.rules[rule.key] = rule
            self._rules_from.setdefault(rule.question_id, []).append(rule)

    def _check_references(self) -> None:
        """Every id named by a rule, the stakeholder question or the report must exist."""
        for rule in self.rules.values():
            for qid in [rule.question_id, *rule.referenced_questions]:
                if qid not in self._by_id:
                    raise CatalogError(
                        f"Skip rule {rule.question_id}={rule.trigger_value} "
                        f"references unknown question '{qid}'"
                    )
            action = rule.action
            if isinstance(action, RouteToRange):
                if self._position[action.start] > self._position[action.end]:
                    raise CatalogError(
                        f"Skip rule {rule.question_id}={rule.trigger_value}: "
                        f"range {action.start}..{action.end} is inverted"
                    )

        if self.stakeholder_question and self.stakeholder_question not in self._by_id:
            raise CatalogError(
                f"stakeholder_question references unknown question '{self.stakeholder_question}'"
            )
        for qid in self.report.referenced():
            if qid not in self._by_id:
                raise CatalogError(f"report references unknown question '{qid}'")

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.questions)

    def __iter__(self) -> Iterator[Question]:
        return iter(self.questions)

    def __contains__(self, qid: object) -> bool:
        return qid in self._by_id

    def get(self, qid: str) -> Question:
        """Look up a question by id.

        Raises:
            QuestionNotFoundError: if the id is not in the catalog.
        """
        try:
            return self._by_id[qid]
        except KeyError:
            raise QuestionNotFoundError(qid) from None

    def find(self, qid: Optional[str]) -> Optional[Question]:
        """Like :meth:`get` but returns None for unknown (or None) ids."""
        if qid is None:
            return None
        return self._by_id.get(qid)

    def index_of(self, qid: str) -> int:
        """Zero-based position of ``qid`` in catalog declaration order."""
        try:
            return self._position[qid]
        except KeyError:
            raise QuestionNotFoundError(qid) from None

    def first(self) -> Question:
        return self.questions[0]

    def rule_for(self, qid: str, trigger_value: Any) -> Optional[SkipRule]:
        """The rule fired by answering ``trigger_value`` to ``qid``, if any."""
        trigger = normalise_trigger(trigger_value)
        if trigger is None:
            return None
        return self.rules.get(RuleKey(qid, trigger))

    def rules_from(self, qid: str) -> list[SkipRule]:
        """All rules whose source is ``qid``."""
        return list(self._rules_from.get(qid, []))

    def section(self, section_id: str) -> Section:
        try:
            return self.sections[section_id]
        except KeyError:
            raise CatalogError(f"Unknown section: {section_id}") from None

    def questions_in_section(self, section_id: str) -> list[Question]:
        return [self._by_id[qid] for qid in self.section(section_id).question_ids]

    def required_questions(self) -> list[Question]:
        return [q for q in self.questions if q.required]

    def funnel_stage_of(self, qid: str) -> Optional[str]:
        """The funnel stage tagged on the question's section, or None."""
        question = self._by_id.get(qid)
        if question is None:
            return None
        return self.sections[question.section].funnel_stage
