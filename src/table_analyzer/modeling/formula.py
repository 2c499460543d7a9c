from __future__ import annotations

from dataclasses import dataclass, field
from itertools import combinations
from typing import Iterable, Sequence


@dataclass(frozen=True)
class Term:
    """A main effect (one column) or an interaction of several columns."""

    factors: tuple[str, ...]

    def __post_init__(self) -> None:
        factors = tuple(self.factors)
        if not factors:
            raise ValueError("A term needs at least one column.")
        if len(set(factors)) != len(factors):
            raise ValueError(f"Term repeats a column: {':'.join(factors)}")
        object.__setattr__(self, "factors", factors)

    @classmethod
    def of(cls, spec: "str | Term | Sequence[str]") -> "Term":
        if isinstance(spec, Term):
            return spec
        if isinstance(spec, str):
            return cls(tuple(part.strip() for part in spec.split(":")))
        return cls(tuple(spec))

    @property
    def label(self) -> str:
        return ":".join(self.factors)

    @property
    def is_interaction(self) -> bool:
        return len(self.factors) > 1


@dataclass(frozen=True)
class ModelFormula:
    response: str
    terms: tuple[Term, ...] = field(default_factory=tuple)
    intercept: bool = True

    @classmethod
    def build(
        cls,
        response: str,
        terms: Iterable["str | Term | Sequence[str]"],
        intercept: bool = True,
    ) -> "ModelFormula":
        unique: dict[Term, None] = {}
        for spec in terms:
            unique.setdefault(Term.of(spec), None)
        return cls(response=response, terms=tuple(unique), intercept=intercept)

    @property
    def columns(self) -> list[str]:
        names = [self.response]
        for term in self.terms:
            names.extend(factor for factor in term.factors if factor not in names)
        return names

    def __str__(self) -> str:
        rhs = " + ".join(term.label for term in self.terms) or "1"
        if not self.intercept:
            rhs = f"{rhs} - 1" if self.terms else "0"
        return f"{self.response} ~ {rhs}"


def _expand_product(chunk: str) -> list[Term]:
    factors = [part.strip() for part in chunk.split("*")]
    if any(not part for part in factors):
        raise ValueError(f"Malformed product term: {chunk!r}")
    expanded: list[Term] = []
    for size in range(1, len(factors) + 1):
        for combo in combinations(factors, size):
            parts = [piece.strip() for name in combo for piece in name.split(":")]
            expanded.append(Term(tuple(parts)))
    return expanded


def parse_formula(text: str) -> ModelFormula:
    """Parse ``"y ~ a + b + a:b"`` style text into a :class:`ModelFormula`.

    Supports ``+``, ``:`` interactions, ``*`` crossing and ``- 1`` / ``+ 0`` to
    drop the intercept.
    """
    if text.count("~") != 1:
        raise ValueError(f"Formula needs exactly one '~': {text!r}")
    lhs, rhs = (side.strip() for side in text.split("~"))
    if not lhs:
        raise ValueError(f"Formula has no response: {text!r}")

    intercept = True
    terms: list[Term] = []
    normalized = rhs.replace("-", "+-")
    for raw in normalized.split("+"):
        chunk = raw.strip()
        if not chunk:
            continue
        if chunk in {"-1", "- 1", "0"}:
            intercept = False
            continue
        if chunk == "1":
            intercept = True
            continue
        if chunk.startswith("-"):
            raise ValueError(f"Only the intercept can be removed from a formula: {chunk!r}")
        terms.extend(_expand_product(chunk))
    # Lower-order terms first; ordering is stable within a degree.
    terms.sort(key=lambda term: len(term.factors))
    return ModelFormula.build(lhs, terms, intercept=intercept)
