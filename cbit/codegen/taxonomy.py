"""
Escape taxonomy of a cbit loop.

The escape reasons one loop can relay are derived from its `break` clause:
`EarlyReturn` and `EarlyBreak` always, one `BreakTo` per declared label and
one `ContinueTo` per label declared with `loop`. The runtime represents them
with generic classes indexed by label name (`cbit.runtime`); the taxonomy
records which of them a loop can produce, along with the fresh names its
generated code uses.
"""

from dataclasses import dataclass
from typing import Optional

from cbit.ast.nodes import LoopSpec
from cbit.utils import NameGenerator


@dataclass(frozen=True)
class Variant:
    # name of the `cbit.runtime` class
    kind: str
    label: Optional[str] = None

    @property
    def has_payload(self) -> bool:
        return self.kind != "ContinueTo"

    def __str__(self):
        if self.label is None:
            return self.kind
        return f"{self.kind}({self.label})"


@dataclass
class LoopNames:
    """
    Generated identifiers for one cbit loop. All carry the reserved `_cbit_`
    prefix and the id of the loop, so they collide neither with user
    identifiers nor with the names of other loops.
    """

    task: str
    item: str
    slot: str
    # continue value of the body
    value: str
    # value of `break with` to the loop itself
    brk: str
    # target of the one-pass absorber loops
    once: str
    # result of the iterator function
    result: str

    @classmethod
    def for_loop(cls, loop_id: int, names: NameGenerator) -> "LoopNames":
        return cls(
            task=names.make("task", loop_id),
            item=names.make("item", loop_id),
            slot=names.make("slot", loop_id),
            value=names.make("value", loop_id),
            brk=names.make(loop_id, "brk"),
            once=names.make("once", loop_id),
            result=names.make("res", loop_id),
        )


@dataclass
class EscapeTaxonomy:
    loop_id: int
    variants: list
    names: LoopNames
    # label -> generated name holding the value of `break <label> with`
    break_vars: dict

    def break_var(self, label: str) -> str:
        return self.break_vars[label]

    def has_variant(self, kind: str, label: Optional[str] = None) -> bool:
        return Variant(kind, label) in self.variants

    @property
    def payload_variants(self) -> list:
        return [v for v in self.variants if v.has_payload]

    def as_dict(self) -> dict:
        return {
            "variants": [str(v) for v in self.variants],
            "break_vars": dict(self.break_vars),
        }


def build_taxonomy(spec: LoopSpec, loop_id: int, names: NameGenerator) -> EscapeTaxonomy:
    variants = [Variant("EarlyReturn"), Variant("EarlyBreak")]
    variants.extend(Variant("BreakTo", entry.label) for entry in spec.escape_labels)
    variants.extend(
        Variant("ContinueTo", entry.label)
        for entry in spec.escape_labels
        if entry.accepts_continue
    )

    break_vars = {
        entry.label: names.make(loop_id, "brk", entry.label) for entry in spec.escape_labels
    }

    return EscapeTaxonomy(
        loop_id=loop_id,
        variants=variants,
        names=LoopNames.for_loop(loop_id, names),
        break_vars=break_vars,
    )
