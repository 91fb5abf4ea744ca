import pytest
from pydantic import ValidationError

from scene_agent.actions import (
    ACTION_TYPES,
    KIND_LABELS,
    CreateActor,
    LandscapeGenerate,
    LandscapeSculpt,
    ModifyActor,
    action_to_wire,
    build_action,
    normalize_risk,
    preview_text,
)
from scene_agent.errors import ActionValidationError, UnknownCommandError

# Smallest params object each command accepts.
MINIMAL_PARAMS = {
    "context.getSceneSummary": {},
    "context.getSelection": {},
    "editor.undo": {},
    "editor.redo": {},
    "scene.modifyActor": {"deltaRotation": {"yaw": 90}},
    "scene.createActor": {},
    "scene.deleteActor": {},
    "scene.modifyComponent": {"componentName": "StaticMeshComponent0", "visibility": False},
    "scene.setComponentMaterial": {"componentName": "Mesh", "materialPath": "/Game/M_Wall.M_Wall"},
    "scene.setComponentStaticMesh": {"componentName": "Mesh", "meshPath": "/Game/SM_Crate.SM_Crate"},
    "scene.addActorTag": {"tag": "Props"},
    "scene.setActorFolder": {"folderPath": ""},
    "scene.addActorLabelPrefix": {"prefix": "SetA_"},
    "scene.duplicateActors": {},
    "scene.setDirectionalLightIntensity": {"intensity": 8},
    "scene.setFogDensity": {"density": 0.05},
    "scene.setPostProcessExposureCompensation": {"exposureCompensation": -1.5},
    "landscape.sculpt": {"center": {"x": 0, "y": 0}, "size": {"x": 500, "y": 500}, "strength": 0.2, "falloff": 0.5},
    "landscape.paintLayer": {
        "center": {"x": 0, "y": 0},
        "size": {"x": 500, "y": 500},
        "layerName": "Grass",
        "strength": 0.4,
        "falloff": 0.5,
    },
    "landscape.generate": {"theme": "moon_surface"},
    "session.beginTransaction": {},
    "session.commitTransaction": {},
    "session.rollbackTransaction": {},
}

# ---------------------------------------------------------------------------
# Command table
# ---------------------------------------------------------------------------


def test_command_table_has_all_kinds():
    assert len(ACTION_TYPES) == 23
    assert set(ACTION_TYPES) == set(MINIMAL_PARAMS)
    assert set(KIND_LABELS) == set(ACTION_TYPES)


@pytest.mark.parametrize("command", sorted(MINIMAL_PARAMS))
def test_every_command_builds_from_minimal_params(command):
    action = build_action(command, MINIMAL_PARAMS[command])
    assert action.command == command
    assert isinstance(action, ACTION_TYPES[command])
    assert action.label == KIND_LABELS[command]
    assert action.risk == "low"
    assert action.approved is True
    assert action.state == "pending"
    assert action.attempt_count == 0


def test_unknown_command_is_rejected():
    with pytest.raises(UnknownCommandError):
        build_action("bogus.command", {})


def test_non_string_command_is_rejected():
    with pytest.raises(UnknownCommandError):
        build_action(None, {})


def test_params_must_be_an_object():
    with pytest.raises(ActionValidationError):
        build_action("scene.createActor", ["not", "a", "dict"])


# ---------------------------------------------------------------------------
# Per-kind validation and defaults
# ---------------------------------------------------------------------------


def test_modify_actor_delta_location():
    action = build_action("scene.modifyActor", {"deltaLocation": {"x": 10, "y": 0, "z": 0}})
    assert isinstance(action, ModifyActor)
    assert action.delta_location.x == 10
    assert action.delta_scale.is_zero()
    assert action.delta_rotation.is_zero()
    assert action.scale is None
    assert action.uses_selection


def test_modify_actor_without_transform_is_rejected():
    with pytest.raises(ActionValidationError):
        build_action("scene.modifyActor", {"target": "selection"})


def test_by_name_target_requires_actor_names():
    with pytest.raises(ActionValidationError):
        build_action("scene.deleteActor", {"target": "byName"})

    action = build_action("scene.deleteActor", {"target": "byName", "actorNames": ["Cube_1"]})
    assert action.actor_names == ["Cube_1"]
    assert not action.uses_selection


def test_create_actor_defaults():
    action = build_action("scene.createActor", {})
    assert isinstance(action, CreateActor)
    assert action.actor_class == "Actor"
    assert action.count == 1
    assert action.location.is_zero()
    assert action.rotation.is_zero()


@pytest.mark.parametrize("count", [0, -3, 2.5, "many"])
def test_create_actor_rejects_bad_count(count):
    with pytest.raises(ActionValidationError):
        build_action("scene.createActor", {"count": count})


def test_required_numeric_fields_are_not_defaulted():
    with pytest.raises(ActionValidationError):
        build_action("scene.setFogDensity", {})
    with pytest.raises(ActionValidationError):
        build_action("scene.setDirectionalLightIntensity", {"intensity": None})


def test_required_string_fields_are_not_defaulted():
    with pytest.raises(ActionValidationError):
        build_action("scene.setComponentMaterial", {"componentName": "Mesh"})
    with pytest.raises(ActionValidationError):
        build_action("scene.addActorLabelPrefix", {"prefix": ""})
    with pytest.raises(ActionValidationError):
        build_action("scene.setActorFolder", {})


def test_modify_component_needs_a_change():
    with pytest.raises(ActionValidationError):
        build_action("scene.modifyComponent", {"componentName": "Mesh"})


def test_landscape_sculpt_requires_brush_fields():
    params = dict(MINIMAL_PARAMS["landscape.sculpt"])
    del params["strength"]
    with pytest.raises(ActionValidationError):
        build_action("landscape.sculpt", params)


def test_landscape_sculpt_lower_mode_inverts():
    params = dict(MINIMAL_PARAMS["landscape.sculpt"], mode="lower")
    action = build_action("landscape.sculpt", params)
    assert isinstance(action, LandscapeSculpt)
    assert action.invert is True


def test_landscape_paint_requires_layer_name():
    params = dict(MINIMAL_PARAMS["landscape.paintLayer"])
    del params["layerName"]
    with pytest.raises(ActionValidationError):
        build_action("landscape.paintLayer", params)


def test_landscape_generate_area():
    full = build_action("landscape.generate", {"theme": "nature_island", "seed": 7})
    assert isinstance(full, LandscapeGenerate)
    assert full.full_area is True
    assert full.seed == 7

    with pytest.raises(ActionValidationError):
        build_action("landscape.generate", {"theme": "nature_island", "size": {"x": 100, "y": 100}})

    partial = build_action(
        "landscape.generate",
        {"theme": "moon_surface", "center": {"x": 0, "y": 0}, "size": {"x": 100, "y": 100}},
    )
    assert partial.full_area is False


def test_landscape_generate_requires_known_theme():
    with pytest.raises(ActionValidationError):
        build_action("landscape.generate", {})
    with pytest.raises(ActionValidationError):
        build_action("landscape.generate", {"theme": "desert"})


# ---------------------------------------------------------------------------
# Risk and runtime state
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw, expected",
    [(None, "low"), ("HIGH", "high"), (" medium ", "medium"), ("critical", "low"), (3, "low")],
)
def test_normalize_risk(raw, expected):
    assert normalize_risk(raw) == expected


def test_server_risk_is_kept():
    action = build_action("scene.deleteActor", {}, risk="high")
    assert action.risk == "high"


def test_runtime_keys_in_params_are_ignored():
    action = build_action(
        "scene.createActor",
        {"approved": False, "state": "succeeded", "attemptCount": 4, "command": "scene.deleteActor"},
    )
    assert action.command == "scene.createActor"
    assert action.approved is True
    assert action.state == "pending"
    assert action.attempt_count == 0


def test_command_tag_is_frozen():
    action = build_action("scene.createActor", {})
    with pytest.raises(ValidationError):
        action.command = "scene.deleteActor"
    assert action.command == "scene.createActor"


def test_runtime_fields_are_mutable_and_validated():
    action = build_action("scene.modifyActor", {"deltaLocation": {"z": 50}})
    action.approved = False
    action.state = "failed"
    action.attempt_count = 2
    assert (action.approved, action.state, action.attempt_count) == (False, "failed", 2)

    with pytest.raises(ValidationError):
        action.attempt_count = -1
    with pytest.raises(ValidationError):
        action.state = "exploded"


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def test_preview_text_modify_actor():
    action = build_action("scene.modifyActor", {"deltaLocation": {"x": 10, "y": 0, "z": 0}})
    assert preview_text(action) == "[Low] Modify Actor: selection, dLoc=(10, 0, 0)"


def test_preview_text_targets_and_risk():
    action = build_action(
        "scene.duplicateActors",
        {"actorNames": ["A", "B"], "count": 3, "offset": {"x": 100}},
        risk="medium",
    )
    assert preview_text(action) == "[Medium] Duplicate Actors: actors=A, B, count=3, offset=(100, 0, 0)"


def test_preview_text_without_params():
    assert preview_text(build_action("editor.undo", {})) == "[Low] Undo"


def test_preview_text_is_deterministic():
    params = MINIMAL_PARAMS["landscape.paintLayer"]
    first = preview_text(build_action("landscape.paintLayer", params))
    second = preview_text(build_action("landscape.paintLayer", params))
    assert first == second
    assert first.startswith("[Low] Landscape Paint Layer: layer=Grass, add")


def test_action_to_wire_uses_camel_case():
    action = build_action("scene.setComponentMaterial", MINIMAL_PARAMS["scene.setComponentMaterial"], "medium")
    wire = action_to_wire(action)
    assert wire["command"] == "scene.setComponentMaterial"
    assert wire["risk"] == "medium"
    assert wire["params"]["componentName"] == "Mesh"
    assert wire["params"]["materialSlot"] == 0
    assert "approved" not in wire["params"]
