from __future__ import annotations

import pytest

from game_explorer.action_catalog import KEY_SUBSTITUTIONS, ActionCatalogBuilder, button_selector
from game_explorer.knowledge import Action, ActionKind, GameDescriptor, StartHint


def _labels(actions: list[Action]) -> list[str]:
    return [a.describe() for a in actions]


def test_empty_descriptor_still_yields_catalog_ending_in_single_wait() -> None:
    catalog = ActionCatalogBuilder().build(GameDescriptor.unknown())

    assert len(catalog) > 1
    waits = [a for a in catalog if a.kind == ActionKind.WAIT]
    assert len(waits) == 1
    assert catalog[-1].kind == ActionKind.WAIT
    assert catalog[-1].duration_ms == 1000


def test_arrow_descriptor_builds_tiers_in_order() -> None:
    descriptor = GameDescriptor(candidate_keys=("ArrowUp", "ArrowDown"), start_hint=StartHint.AUTO)

    catalog = ActionCatalogBuilder().build(descriptor)

    assert _labels(catalog) == [
        "key Space",
        "key Enter",
        "key Escape",
        "key ArrowUp",
        "key ArrowDown",
        "key ArrowLeft",
        "key ArrowRight",
        "key z",
        "key x",
        "wait 1000ms",
    ]


def test_start_tier_only_keeps_matching_start_keys() -> None:
    descriptor = GameDescriptor(candidate_keys=("enter",), start_hint=StartHint.KEY)

    catalog = ActionCatalogBuilder().build(descriptor)

    assert catalog[0] == Action.key("Enter")
    # Enter also satisfies the action tier, so its fallback keys are not needed
    assert Action.key("Space") not in catalog
    assert Action.key("Escape") not in catalog
    assert [a.value for a in catalog].count("Enter") == 1


def test_start_button_click_comes_first() -> None:
    descriptor = GameDescriptor(start_hint=StartHint.BUTTON, start_label="Play Now")

    catalog = ActionCatalogBuilder().build(descriptor)

    assert catalog[0].kind == ActionKind.CLICK
    assert catalog[0].target == 'button:has-text("Play Now")'


def test_start_button_without_start_wording_is_ignored() -> None:
    descriptor = GameDescriptor(start_hint=StartHint.BUTTON, start_label="Settings")

    catalog = ActionCatalogBuilder().build(descriptor)

    assert all(a.kind != ActionKind.CLICK for a in catalog)


def test_wasd_and_arrows_both_emitted_when_both_present() -> None:
    descriptor = GameDescriptor(candidate_keys=("ArrowLeft", "W"))

    labels = _labels(ActionCatalogBuilder().build(descriptor))

    for key in ("ArrowUp", "ArrowDown", "ArrowLeft", "ArrowRight", "w", "a", "s", "d"):
        assert f"key {key}" in labels
    assert labels.index("key ArrowRight") < labels.index("key w")


def test_action_tier_uses_whitelist_intersection() -> None:
    descriptor = GameDescriptor(candidate_keys=("Control", "x", "q"))

    labels = _labels(ActionCatalogBuilder().build(descriptor))

    assert "key x" in labels
    assert "key Control" in labels
    assert "key z" not in labels
    assert "key q" not in labels


def test_pointer_tier_requires_click_gesture() -> None:
    builder = ActionCatalogBuilder()
    with_click = builder.build(GameDescriptor(candidate_gestures=frozenset({"click", "drag"})))
    without_click = builder.build(GameDescriptor(candidate_gestures=frozenset({"drag"})))

    clicks = [a for a in with_click if a.kind == ActionKind.CLICK]
    assert [c.target for c in clicks] == ["canvas:center", "button"]
    assert with_click[-1].kind == ActionKind.WAIT
    assert with_click[-3:-1] == clicks
    assert not [a for a in without_click if a.kind == ActionKind.CLICK]


def test_catalog_never_repeats_a_key() -> None:
    descriptor = GameDescriptor(candidate_keys=("Space", "Enter", "z", "ArrowUp"))

    catalog = ActionCatalogBuilder().build(descriptor)
    keys = [a.value for a in catalog if a.kind == ActionKind.KEY]

    assert len(keys) == len(set(keys))


@pytest.mark.parametrize(
    "failed, expected",
    [
        ("ArrowUp", "w"),
        ("w", "ArrowUp"),
        ("ArrowLeft", "a"),
        ("d", "ArrowRight"),
        ("S", "ArrowDown"),
        ("Space", "Enter"),
        ("Enter", "Space"),
    ],
)
def test_key_variations(failed: str, expected: str) -> None:
    variations = ActionCatalogBuilder().create_action_variations(Action.key(failed), GameDescriptor.unknown())

    assert Action.key(expected) in variations
    assert variations[-1].kind == ActionKind.WAIT
    assert variations[-1].duration_ms == 1500


def test_center_click_falls_back_to_first_button() -> None:
    variations = ActionCatalogBuilder().create_action_variations(
        Action.click("canvas:center", "Click canvas center"), GameDescriptor.unknown()
    )

    assert variations[0].kind == ActionKind.CLICK
    assert variations[0].target == "button"
    assert variations[-1] == Action.wait(1500)


def test_unmatched_action_has_no_variations() -> None:
    builder = ActionCatalogBuilder()

    assert builder.create_action_variations(Action.key("z"), GameDescriptor.unknown()) == []
    assert builder.create_action_variations(Action.wait(1000), GameDescriptor.unknown()) == []


def test_substitution_table_is_symmetric() -> None:
    for key, substitute in KEY_SUBSTITUTIONS.items():
        assert KEY_SUBSTITUTIONS[substitute] == key


def test_button_selector_escapes_quotes() -> None:
    assert button_selector('Say "Go"') == 'button:has-text("Say \\"Go\\"")'
    assert button_selector("a\\b") == 'button:has-text("a\\\\b")'


def test_start_button_label_with_quotes_is_escaped() -> None:
    descriptor = GameDescriptor(start_hint=StartHint.BUTTON, start_label='Press "Start"')

    catalog = ActionCatalogBuilder().build(descriptor)

    assert catalog[0].target == 'button:has-text("Press \\"Start\\"")'
