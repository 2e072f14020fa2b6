from __future__ import annotations

import typing as tp
from dataclasses import dataclass

from ._exceptions import InvalidSpecification

__all__ = ("CodeRange", "CodeRangeMatcher", "CodeRangeSpec", "compile_code_range", "parse_code_range")


@dataclass(frozen=True)
class CodeRange:
    """An inclusive range of status codes."""

    start: int
    end: int

    def __contains__(self, code: int) -> bool:
        return self.start <= code <= self.end


RangeLike = tp.Union[CodeRange, tp.Mapping[str, int]]
CodeRangeSpec = tp.Union[int, str, RangeLike, tp.Sequence[int], tp.Sequence[RangeLike]]


def _is_int(value: tp.Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _merge_codes(codes: tp.Iterable[int]) -> tp.List[CodeRange]:
    ranges: tp.List[CodeRange] = []
    for code in sorted(codes):
        if ranges and code <= ranges[-1].end + 1:
            last = ranges[-1]
            ranges[-1] = CodeRange(last.start, max(last.end, code))
        else:
            ranges.append(CodeRange(code, code))
    return ranges


def _parse_text(text: str) -> tp.List[CodeRange]:
    ranges = []
    for token in text.split(","):
        bounds = token.split("-")
        if len(bounds) > 2:
            raise InvalidSpecification(f"Invalid code range token {token!r} in {text!r}")
        try:
            values = [int(bound) for bound in bounds]
        except ValueError:
            raise InvalidSpecification(f"Invalid code range token {token!r} in {text!r}") from None
        start, end = values[0], values[-1]
        if start > end:
            start, end = end, start
        ranges.append(CodeRange(start, end))
    return ranges


def _parse_range(value: tp.Any) -> CodeRange:
    if isinstance(value, CodeRange):
        return value
    if isinstance(value, tp.Mapping) and _is_int(value.get("from")) and _is_int(value.get("to")):
        return CodeRange(value["from"], value["to"])
    raise InvalidSpecification(f"Invalid code range {value!r}, expected a mapping with integer `from` and `to`")


def parse_code_range(spec: CodeRangeSpec) -> tp.List[CodeRange]:
    """
    Normalizes a code range specification into a list of inclusive ranges.

    Accepted forms are a single code (``404``), a list of codes (``[500, 502]``),
    a text specification (``"404, 500-505"``), a ``{"from": .., "to": ..}`` mapping
    or a list of such mappings. Numeric forms are sorted and consecutive values are
    merged, so ``[500, 501, 502]`` becomes a single ``500-502`` range.

    :raises InvalidSpecification: if the specification is empty or malformed
    """
    if _is_int(spec):
        return [CodeRange(tp.cast(int, spec), tp.cast(int, spec))]

    if isinstance(spec, str):
        if not spec.strip():
            raise InvalidSpecification("Code range specification must not be empty")
        return _parse_text(spec)

    if isinstance(spec, (CodeRange, tp.Mapping)):
        return [_parse_range(spec)]

    if isinstance(spec, (list, tuple, set, frozenset)):
        items = list(spec)
        if not items:
            raise InvalidSpecification("Code range specification must not be empty")
        if all(_is_int(item) for item in items):
            return _merge_codes(items)
        return [_parse_range(item) for item in items]

    raise InvalidSpecification(f"Unsupported code range specification {spec!r}")


class CodeRangeMatcher:
    """
    Membership predicate over a compiled code range specification.

    Answers are memoized per queried code.
    """

    def __init__(self, spec: CodeRangeSpec) -> None:
        self.ranges = parse_code_range(spec)
        self._answers: tp.Dict[int, bool] = {}

    def __call__(self, code: tp.Union[int, str, None]) -> bool:
        try:
            value = int(code)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return False

        if value in self._answers:
            return self._answers[value]

        answer = any(value in code_range for code_range in self.ranges)
        self._answers[value] = answer
        return answer

    def __repr__(self) -> str:
        ranges = ", ".join(f"{r.start}-{r.end}" if r.start != r.end else str(r.start) for r in self.ranges)
        return f"<CodeRangeMatcher [{ranges}]>"


def compile_code_range(spec: CodeRangeSpec) -> CodeRangeMatcher:
    return CodeRangeMatcher(spec)
