"""Persisted and resolved dashboard layout shapes."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class GridItem(BaseModel):
    key: str
    x: int = Field(ge=0)
    y: int = Field(ge=0)
    width: int = Field(ge=1)
    height: int = Field(ge=1)
    min_width: Optional[int] = None
    min_height: Optional[int] = None


class LayoutConfig(BaseModel):
    """A user's saved layout document. Always written whole.

    ``None`` on a field means the user never saved a preference for it;
    an empty list is an explicit choice and is honoured as such.
    """
    section_order: Optional[list[str]] = None
    hidden_sections: Optional[list[str]] = None
    layout_grid: Optional[list[GridItem]] = None
    element_order: Optional[dict[str, list[str]]] = None
    hidden_elements: Optional[list[str]] = None
    pinned_sections: Optional[list[str]] = None


class StoredLayout(LayoutConfig):
    user_id: str
    configured_by: Optional[str] = None
    updated_at: Optional[datetime] = None


def element_key(section_key: str, element_id: str) -> str:
    """Composite id used by hidden element sets."""
    return f"{section_key}:{element_id}"


@dataclass
class ResolvedLayout:
    """The deterministic rendering plan for one viewer."""
    order: list[str]
    hidden: set[str]
    grid: list[GridItem]
    element_order: dict[str, list[str]]
    hidden_elements: set[str]
    pinned: set[str] = field(default_factory=set)

    @property
    def effective_hidden(self) -> set[str]:
        """Hidden sections after pins override them; ``hidden`` keeps the user's choice."""
        return self.hidden - self.pinned

    @property
    def visible_order(self) -> list[str]:
        return [k for k in self.order if k not in self.effective_hidden]

    def grid_for(self, section_key: str) -> Optional[GridItem]:
        for item in self.grid:
            if item.key == section_key:
                return item
        return None

    def visible_elements(self, section_key: str) -> list[str]:
        return [
            e for e in self.element_order.get(section_key, [])
            if element_key(section_key, e) not in self.hidden_elements
        ]

    def as_config(self) -> LayoutConfig:
        """Express this resolution as a saveable layout document."""
        return LayoutConfig(
            section_order=list(self.order),
            hidden_sections=sorted(self.hidden),
            layout_grid=[item.model_copy() for item in self.grid],
            element_order={k: list(v) for k, v in self.element_order.items()},
            hidden_elements=sorted(self.hidden_elements),
            pinned_sections=sorted(self.pinned),
        )
