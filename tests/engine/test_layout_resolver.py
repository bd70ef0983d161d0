"""Tests for the layout resolver."""

from grcdash.auth.capabilities import ROLE_CCRO_TEAM, ROLE_OWNER, ROLE_REVIEWER, ROLE_VIEWER
from grcdash.engine.layout_config import GridItem, LayoutConfig, element_key
from grcdash.engine.layout_resolver import (
    default_layout,
    resolve,
    resolve_grid,
    resolve_section_order,
)
from grcdash.engine.registry import (
    CCRO_DEFAULT_SECTION_ORDER,
    DEFAULT_REGISTRY,
    DEFAULT_SECTION_ORDER,
    ROLE_DEFAULT_HIDDEN,
    ElementDef,
    GridDefault,
    SectionDef,
    SectionRegistry,
)


class TestSectionOrder:
    def test_no_saved_layout_uses_registry_order(self, abc_registry):
        resolved = resolve(None, ROLE_OWNER, abc_registry)
        assert resolved.order == ["A", "B", "C"]

    def test_saved_order_is_used(self, abc_registry):
        resolved = resolve(LayoutConfig(section_order=["C", "A", "B"]), ROLE_OWNER, abc_registry)
        assert resolved.order == ["C", "A", "B"]

    def test_new_registry_key_appended_once(self, registry_of):
        registry = registry_of(["A", "B", "C", "D"])
        resolved = resolve(LayoutConfig(section_order=["B", "A", "C"]), ROLE_VIEWER, registry)
        assert resolved.order == ["B", "A", "C", "D"]
        assert resolved.order.count("D") == 1

    def test_unknown_keys_dropped(self, abc_registry):
        saved = LayoutConfig(section_order=["A", "retired", "C", "B"])
        assert resolve(saved, ROLE_VIEWER, abc_registry).order == ["A", "C", "B"]

    def test_duplicates_keep_first_occurrence(self, abc_registry):
        saved = LayoutConfig(section_order=["B", "A", "B", "C", "A"])
        assert resolve(saved, ROLE_VIEWER, abc_registry).order == ["B", "A", "C"]

    def test_empty_saved_order_falls_through_to_registry_order(self, abc_registry):
        saved = LayoutConfig(section_order=[])
        assert resolve(saved, ROLE_VIEWER, abc_registry).order == ["A", "B", "C"]

    def test_role_default_order(self, registry_of):
        registry = registry_of(["A", "B", "C"], order_for={ROLE_CCRO_TEAM: ["C", "B"]})
        assert resolve_section_order(None, ROLE_CCRO_TEAM, registry) == ["C", "B", "A"]
        assert resolve_section_order(None, ROLE_VIEWER, registry) == ["A", "B", "C"]

    def test_saved_order_beats_role_default(self, registry_of):
        registry = registry_of(["A", "B", "C"], order_for={ROLE_CCRO_TEAM: ["C", "B", "A"]})
        saved = LayoutConfig(section_order=["A", "C", "B"])
        assert resolve_section_order(saved, ROLE_CCRO_TEAM, registry) == ["A", "C", "B"]

    def test_order_is_a_permutation_of_registry(self):
        saved = LayoutConfig(section_order=["reports", "ghost", "welcome", "reports"])
        order = resolve(saved, ROLE_VIEWER).order
        assert sorted(order) == sorted(DEFAULT_REGISTRY.keys)
        assert order[:2] == ["reports", "welcome"]


class TestHiddenSections:
    def test_role_default_hidden_without_saved_layout(self, abc_registry):
        resolved = resolve(None, ROLE_OWNER, abc_registry)
        assert resolved.hidden == {"C"}
        assert resolved.visible_order == ["A", "B"]

    def test_explicit_empty_hidden_is_honoured(self, abc_registry):
        resolved = resolve(LayoutConfig(hidden_sections=[]), ROLE_OWNER, abc_registry)
        assert resolved.hidden == set()
        assert resolved.visible_order == ["A", "B", "C"]

    def test_saved_hidden_replaces_role_default(self, abc_registry):
        resolved = resolve(LayoutConfig(hidden_sections=["A"]), ROLE_OWNER, abc_registry)
        assert resolved.hidden == {"A"}

    def test_unknown_hidden_keys_ignored(self, abc_registry):
        resolved = resolve(LayoutConfig(hidden_sections=["B", "gone"]), ROLE_VIEWER, abc_registry)
        assert resolved.hidden == {"B"}

    def test_role_without_defaults_hides_nothing(self, abc_registry):
        assert resolve(None, ROLE_VIEWER, abc_registry).hidden == set()

    def test_pinned_section_is_never_hidden(self, abc_registry):
        saved = LayoutConfig(hidden_sections=["B", "C"], pinned_sections=["C"])
        resolved = resolve(saved, ROLE_VIEWER, abc_registry)
        assert resolved.effective_hidden == {"B"}
        assert resolved.pinned == {"C"}
        assert "C" in resolved.visible_order

    def test_pin_overrides_role_default_hidden(self, abc_registry):
        resolved = resolve(LayoutConfig(pinned_sections=["C"]), ROLE_OWNER, abc_registry)
        assert resolved.effective_hidden == set()
        assert resolved.visible_order == ["A", "B", "C"]

    def test_pin_keeps_users_own_hidden_choice(self, abc_registry):
        saved = LayoutConfig(hidden_sections=["B", "C"], pinned_sections=["C"])
        resolved = resolve(saved, ROLE_VIEWER, abc_registry)
        assert resolved.hidden == {"B", "C"}
        assert resolved.as_config().hidden_sections == ["B", "C"]

    def test_unknown_pins_dropped(self, abc_registry):
        resolved = resolve(LayoutConfig(pinned_sections=["Z"]), ROLE_VIEWER, abc_registry)
        assert resolved.pinned == set()

    def test_owner_defaults_on_full_registry(self):
        resolved = default_layout(ROLE_OWNER)
        assert resolved.hidden == set(ROLE_DEFAULT_HIDDEN[ROLE_OWNER])
        assert "programme-health" not in resolved.visible_order

    def test_reviewer_defaults_on_full_registry(self):
        resolved = default_layout(ROLE_REVIEWER)
        assert "policy-health" in resolved.visible_order
        assert "cross-entity" not in resolved.visible_order


class TestCcroDefaults:
    def test_ccro_order_starts_with_priority_sections(self):
        resolved = default_layout(ROLE_CCRO_TEAM)
        assert resolved.order == CCRO_DEFAULT_SECTION_ORDER
        assert resolved.order[:4] == ["welcome", "notifications", "action-required", "proposed-changes"]
        assert resolved.hidden == set()

    def test_other_roles_get_registry_order(self):
        assert default_layout(ROLE_VIEWER).order == DEFAULT_SECTION_ORDER


class TestGrid:
    def _registry(self):
        return SectionRegistry.build(
            sections=[SectionDef("A", "A", ""), SectionDef("B", "B", ""), SectionDef("C", "C", "")],
            default_grid=[GridDefault("A", 0, 0, 12, 4, 4, 2), GridDefault("B", 0, 4, 6, 3)],
        )

    def test_defaults_when_nothing_saved(self):
        grid = resolve_grid(None, self._registry())
        assert [g.key for g in grid] == ["A", "B", "C"]
        assert grid[0].min_width == 4
        # C has no registry default and lands below B
        assert (grid[2].x, grid[2].y, grid[2].width, grid[2].height) == (0, 7, 12, 4)

    def test_saved_positions_preserved(self):
        saved = LayoutConfig(layout_grid=[GridItem(key="B", x=6, y=0, width=6, height=5)])
        grid = resolve_grid(saved, self._registry())
        assert grid[0] == GridItem(key="B", x=6, y=0, width=6, height=5)
        assert {g.key for g in grid} == {"A", "B", "C"}

    def test_unknown_and_duplicate_items_dropped(self):
        saved = LayoutConfig(layout_grid=[
            GridItem(key="A", x=0, y=0, width=4, height=2),
            GridItem(key="A", x=4, y=0, width=4, height=2),
            GridItem(key="old", x=0, y=2, width=4, height=2),
        ])
        grid = resolve_grid(saved, self._registry())
        assert [g.key for g in grid].count("A") == 1
        assert grid[0].x == 0
        assert "old" not in [g.key for g in grid]

    def test_full_registry_has_grid_for_every_section(self):
        resolved = default_layout(ROLE_VIEWER)
        for key in DEFAULT_REGISTRY.keys:
            assert resolved.grid_for(key) is not None


class TestElements:
    def _registry(self):
        return SectionRegistry.build(
            sections=[SectionDef("cards", "Cards", "")],
            elements={"cards": [ElementDef("p1", "P1"), ElementDef("p2", "P2"), ElementDef("p3", "P3")]},
        )

    def test_default_element_order(self):
        resolved = resolve(None, ROLE_VIEWER, self._registry())
        assert resolved.element_order == {"cards": ["p1", "p2", "p3"]}

    def test_saved_element_order_merged(self):
        saved = LayoutConfig(element_order={"cards": ["p3", "ghost", "p1", "p3"], "gone": ["x"]})
        resolved = resolve(saved, ROLE_VIEWER, self._registry())
        assert resolved.element_order == {"cards": ["p3", "p1", "p2"]}

    def test_hidden_elements(self):
        saved = LayoutConfig(hidden_elements=[element_key("cards", "p2")])
        resolved = resolve(saved, ROLE_VIEWER, self._registry())
        assert resolved.visible_elements("cards") == ["p1", "p3"]

    def test_priority_cards_on_full_registry(self):
        resolved = default_layout(ROLE_VIEWER)
        assert resolved.visible_elements("priority-actions") == ["card-p1", "card-p2", "card-p3"]


class TestIdempotence:
    def test_resolving_a_resolution_is_stable(self, registry_of):
        registry = registry_of(["A", "B", "C", "D"], hidden_for={ROLE_OWNER: ["D"]})
        saved = LayoutConfig(section_order=["C", "x", "A"], hidden_sections=["A", "y"], pinned_sections=["A"])
        first = resolve(saved, ROLE_OWNER, registry)
        second = resolve(first.as_config(), ROLE_OWNER, registry)
        assert second == first

    def test_defaults_round_trip(self):
        first = default_layout(ROLE_OWNER)
        assert resolve(first.as_config(), ROLE_OWNER) == first

    def test_resolution_is_deterministic(self):
        saved = LayoutConfig(section_order=["reports"], hidden_sections=["welcome"])
        assert resolve(saved, ROLE_CCRO_TEAM) == resolve(saved, ROLE_CCRO_TEAM)
