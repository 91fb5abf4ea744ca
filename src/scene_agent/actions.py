# actions.py
# Typed automation commands understood by the editor.
#
# One pydantic model per command kind. The wire identifier lives in the
# frozen `command` field and doubles as the union discriminator, so a parsed
# action can change its approval, state and attempt count but never its kind.
#
# Validation is per kind: required parameters that are missing reject the
# whole action. Only the defaults the editor tools define (spawn count,
# actor class, zero deltas, brush mode...) are filled in.

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from scene_agent.errors import ActionValidationError, UnknownCommandError

Risk = Literal["low", "medium", "high"]
ActionState = Literal["pending", "succeeded", "failed"]

RISK_LEVELS: tuple[str, ...] = ("low", "medium", "high")

# Runtime bookkeeping keys. Never accepted from an action's params object.
_RUNTIME_KEYS = {"command", "risk", "approved", "state", "attemptCount", "attempt_count"}


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


class _Wire(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Vector(_Wire):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def is_zero(self) -> bool:
        return self.x == 0 and self.y == 0 and self.z == 0

    def __str__(self) -> str:
        return f"({_num(self.x)}, {_num(self.y)}, {_num(self.z)})"


class Rotator(_Wire):
    pitch: float = 0.0
    yaw: float = 0.0
    roll: float = 0.0

    def is_zero(self) -> bool:
        return self.pitch == 0 and self.yaw == 0 and self.roll == 0

    def __str__(self) -> str:
        return f"(P={_num(self.pitch)}, Y={_num(self.yaw)}, R={_num(self.roll)})"


class Vector2D(_Wire):
    """Landscape-plane coordinate. Both axes are required."""

    x: float
    y: float

    def __str__(self) -> str:
        return f"({_num(self.x)}, {_num(self.y)})"


def _num(value: float) -> str:
    return f"{value:g}"


# ---------------------------------------------------------------------------
# Base classes
# ---------------------------------------------------------------------------


class ActionBase(_Wire):
    """Runtime state shared by every planned action."""

    model_config = ConfigDict(validate_assignment=True)

    risk: Risk = "low"
    approved: bool = True
    state: ActionState = "pending"
    attempt_count: int = Field(default=0, ge=0)

    @property
    def label(self) -> str:
        return KIND_LABELS.get(self.command, "Unknown")

    def describe(self) -> str:
        """Key parameters, rendered for a one-line preview."""
        return ""


class TargetedAction(ActionBase):
    """An action applied to named actors, or to the editor selection."""

    target: Literal["selection", "byName"] = "selection"
    actor_names: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_target(self) -> "TargetedAction":
        if self.target == "byName" and not self.actor_names:
            raise ValueError("target 'byName' requires at least one actor name")
        return self

    @property
    def uses_selection(self) -> bool:
        return not self.actor_names

    def _targets(self) -> str:
        if self.uses_selection:
            return "selection"
        return "actors=" + ", ".join(self.actor_names)


def _parts(*parts: str) -> str:
    return ", ".join(p for p in parts if p)


# ---------------------------------------------------------------------------
# Context / editor / transaction commands
# ---------------------------------------------------------------------------


class GetSceneSummary(ActionBase):
    command: Literal["context.getSceneSummary"] = Field("context.getSceneSummary", frozen=True)


class GetSelection(ActionBase):
    command: Literal["context.getSelection"] = Field("context.getSelection", frozen=True)


class EditorUndo(ActionBase):
    command: Literal["editor.undo"] = Field("editor.undo", frozen=True)


class EditorRedo(ActionBase):
    command: Literal["editor.redo"] = Field("editor.redo", frozen=True)


class BeginTransaction(ActionBase):
    command: Literal["session.beginTransaction"] = Field("session.beginTransaction", frozen=True)
    description: str = "Scene agent session"

    def describe(self) -> str:
        return self.description


class CommitTransaction(ActionBase):
    command: Literal["session.commitTransaction"] = Field("session.commitTransaction", frozen=True)


class RollbackTransaction(ActionBase):
    command: Literal["session.rollbackTransaction"] = Field(
        "session.rollbackTransaction", frozen=True
    )


# ---------------------------------------------------------------------------
# Scene commands
# ---------------------------------------------------------------------------


class ModifyActor(TargetedAction):
    command: Literal["scene.modifyActor"] = Field("scene.modifyActor", frozen=True)
    delta_location: Vector = Field(default_factory=Vector)
    delta_rotation: Rotator = Field(default_factory=Rotator)
    delta_scale: Vector = Field(default_factory=Vector)
    scale: Vector | None = None

    @model_validator(mode="after")
    def _check_transform(self) -> "ModifyActor":
        transform = {"delta_location", "delta_rotation", "delta_scale", "scale"}
        if not transform & self.model_fields_set:
            raise ValueError("modifyActor needs deltaLocation, deltaRotation, deltaScale or scale")
        return self

    def describe(self) -> str:
        return _parts(
            self._targets(),
            "" if self.delta_location.is_zero() else f"dLoc={self.delta_location}",
            "" if self.delta_rotation.is_zero() else f"dRot={self.delta_rotation}",
            "" if self.delta_scale.is_zero() else f"dScale={self.delta_scale}",
            "" if self.scale is None else f"scale={self.scale}",
        )


class CreateActor(ActionBase):
    command: Literal["scene.createActor"] = Field("scene.createActor", frozen=True)
    actor_class: str = Field(default="Actor", min_length=1)
    location: Vector = Field(default_factory=Vector)
    rotation: Rotator = Field(default_factory=Rotator)
    count: int = Field(default=1, ge=1)

    def describe(self) -> str:
        return f"{self.count} x {self.actor_class} at {self.location} rot {self.rotation}"


class DeleteActor(TargetedAction):
    command: Literal["scene.deleteActor"] = Field("scene.deleteActor", frozen=True)

    def describe(self) -> str:
        return self._targets()


class ModifyComponent(TargetedAction):
    command: Literal["scene.modifyComponent"] = Field("scene.modifyComponent", frozen=True)
    component_name: str = Field(..., min_length=1)
    delta_location: Vector = Field(default_factory=Vector)
    delta_rotation: Rotator = Field(default_factory=Rotator)
    delta_scale: Vector = Field(default_factory=Vector)
    scale: Vector | None = None
    visibility: bool | None = None

    @model_validator(mode="after")
    def _check_change(self) -> "ModifyComponent":
        changes = {"delta_location", "delta_rotation", "delta_scale", "scale", "visibility"}
        if not changes & self.model_fields_set:
            raise ValueError("modifyComponent needs a transform or visibility change")
        return self

    def describe(self) -> str:
        return _parts(
            self._targets(),
            f"component={self.component_name}",
            "" if self.delta_location.is_zero() else f"dLoc={self.delta_location}",
            "" if self.delta_rotation.is_zero() else f"dRot={self.delta_rotation}",
            "" if self.delta_scale.is_zero() else f"dScale={self.delta_scale}",
            "" if self.scale is None else f"scale={self.scale}",
            "" if self.visibility is None else f"visible={str(self.visibility).lower()}",
        )


class SetComponentMaterial(TargetedAction):
    command: Literal["scene.setComponentMaterial"] = Field("scene.setComponentMaterial", frozen=True)
    component_name: str = Field(..., min_length=1)
    material_path: str = Field(..., min_length=1)
    material_slot: int = Field(default=0, ge=0)

    def describe(self) -> str:
        return _parts(
            self._targets(),
            f"component={self.component_name}",
            f"material={self.material_path}",
            f"slot={self.material_slot}",
        )


class SetComponentStaticMesh(TargetedAction):
    command: Literal["scene.setComponentStaticMesh"] = Field(
        "scene.setComponentStaticMesh", frozen=True
    )
    component_name: str = Field(..., min_length=1)
    mesh_path: str = Field(..., min_length=1)

    def describe(self) -> str:
        return _parts(self._targets(), f"component={self.component_name}", f"mesh={self.mesh_path}")


class AddActorTag(TargetedAction):
    command: Literal["scene.addActorTag"] = Field("scene.addActorTag", frozen=True)
    tag: str = Field(..., min_length=1)

    def describe(self) -> str:
        return _parts(self._targets(), f"tag={self.tag}")


class SetActorFolder(TargetedAction):
    # An empty folder path clears the folder, so only presence is required.
    command: Literal["scene.setActorFolder"] = Field("scene.setActorFolder", frozen=True)
    folder_path: str

    def describe(self) -> str:
        return _parts(self._targets(), f'folder="{self.folder_path}"')


class AddActorLabelPrefix(TargetedAction):
    command: Literal["scene.addActorLabelPrefix"] = Field("scene.addActorLabelPrefix", frozen=True)
    prefix: str = Field(..., min_length=1)

    def describe(self) -> str:
        return _parts(self._targets(), f"prefix={self.prefix}")


class DuplicateActors(TargetedAction):
    command: Literal["scene.duplicateActors"] = Field("scene.duplicateActors", frozen=True)
    count: int = Field(default=1, ge=1)
    offset: Vector = Field(default_factory=Vector)

    def describe(self) -> str:
        return _parts(self._targets(), f"count={self.count}", f"offset={self.offset}")


class SetDirectionalLightIntensity(TargetedAction):
    command: Literal["scene.setDirectionalLightIntensity"] = Field(
        "scene.setDirectionalLightIntensity", frozen=True
    )
    intensity: float

    def describe(self) -> str:
        return _parts(self._targets(), f"intensity={_num(self.intensity)}")


class SetFogDensity(TargetedAction):
    command: Literal["scene.setFogDensity"] = Field("scene.setFogDensity", frozen=True)
    density: float

    def describe(self) -> str:
        return _parts(self._targets(), f"density={_num(self.density)}")


class SetPostProcessExposure(TargetedAction):
    command: Literal["scene.setPostProcessExposureCompensation"] = Field(
        "scene.setPostProcessExposureCompensation", frozen=True
    )
    exposure_compensation: float

    def describe(self) -> str:
        return _parts(self._targets(), f"exposure={_num(self.exposure_compensation)}")


# ---------------------------------------------------------------------------
# Landscape commands
# ---------------------------------------------------------------------------


class LandscapeSculpt(TargetedAction):
    command: Literal["landscape.sculpt"] = Field("landscape.sculpt", frozen=True)
    center: Vector2D
    size: Vector2D
    strength: float
    falloff: float
    mode: Literal["raise", "lower"] = "raise"

    @property
    def invert(self) -> bool:
        return self.mode == "lower"

    def describe(self) -> str:
        return _parts(
            self.mode,
            f"center={self.center}",
            f"size={self.size}",
            f"strength={_num(self.strength)}",
            f"falloff={_num(self.falloff)}",
        )


class LandscapePaintLayer(TargetedAction):
    command: Literal["landscape.paintLayer"] = Field("landscape.paintLayer", frozen=True)
    center: Vector2D
    size: Vector2D
    layer_name: str = Field(..., min_length=1)
    strength: float
    falloff: float
    mode: Literal["add", "remove"] = "add"

    @property
    def invert(self) -> bool:
        return self.mode == "remove"

    def describe(self) -> str:
        return _parts(
            f"layer={self.layer_name}",
            self.mode,
            f"center={self.center}",
            f"size={self.size}",
            f"strength={_num(self.strength)}",
            f"falloff={_num(self.falloff)}",
        )


class LandscapeGenerate(TargetedAction):
    command: Literal["landscape.generate"] = Field("landscape.generate", frozen=True)
    theme: Literal["moon_surface", "nature_island"]
    detail_level: Literal["low", "medium", "high", "cinematic"] | None = None
    moon_profile: Literal["moon_surface"] | None = None
    use_full_area: bool | None = None
    center: Vector2D | None = None
    size: Vector2D | None = None
    seed: int | None = None
    max_height: float | None = None
    mountain_count: int | None = None
    mountain_width_min: float | None = None
    mountain_width_max: float | None = None
    crater_count_min: int | None = None
    crater_count_max: int | None = None
    crater_width_min: float | None = None
    crater_width_max: float | None = None
    river_count_min: int | None = None
    river_count_max: int | None = None
    river_width_min: float | None = None
    river_width_max: float | None = None
    lake_count_min: int | None = None
    lake_count_max: int | None = None
    lake_width_min: float | None = None
    lake_width_max: float | None = None

    @property
    def full_area(self) -> bool:
        if self.use_full_area is None:
            return self.size is None
        return self.use_full_area

    @model_validator(mode="after")
    def _check_area(self) -> "LandscapeGenerate":
        if not self.full_area and (self.center is None or self.size is None):
            raise ValueError("landscape.generate needs center and size unless useFullArea is set")
        return self

    def describe(self) -> str:
        area = "full area" if self.full_area else f"center={self.center}, size={self.size}"
        return _parts(
            f"theme={self.theme}",
            "" if self.detail_level is None else f"detail={self.detail_level}",
            area,
            "" if self.seed is None else f"seed={self.seed}",
        )


# ---------------------------------------------------------------------------
# Command table
# ---------------------------------------------------------------------------

ACTION_TYPES: dict[str, type[ActionBase]] = {
    "context.getSceneSummary": GetSceneSummary,
    "context.getSelection": GetSelection,
    "editor.undo": EditorUndo,
    "editor.redo": EditorRedo,
    "scene.modifyActor": ModifyActor,
    "scene.createActor": CreateActor,
    "scene.deleteActor": DeleteActor,
    "scene.modifyComponent": ModifyComponent,
    "scene.setComponentMaterial": SetComponentMaterial,
    "scene.setComponentStaticMesh": SetComponentStaticMesh,
    "scene.addActorTag": AddActorTag,
    "scene.setActorFolder": SetActorFolder,
    "scene.addActorLabelPrefix": AddActorLabelPrefix,
    "scene.duplicateActors": DuplicateActors,
    "scene.setDirectionalLightIntensity": SetDirectionalLightIntensity,
    "scene.setFogDensity": SetFogDensity,
    "scene.setPostProcessExposureCompensation": SetPostProcessExposure,
    "landscape.sculpt": LandscapeSculpt,
    "landscape.paintLayer": LandscapePaintLayer,
    "landscape.generate": LandscapeGenerate,
    "session.beginTransaction": BeginTransaction,
    "session.commitTransaction": CommitTransaction,
    "session.rollbackTransaction": RollbackTransaction,
}

KIND_LABELS: dict[str, str] = {
    "context.getSceneSummary": "Read Scene Summary",
    "context.getSelection": "Read Selection",
    "editor.undo": "Undo",
    "editor.redo": "Redo",
    "scene.modifyActor": "Modify Actor",
    "scene.createActor": "Create Actor",
    "scene.deleteActor": "Delete Actor",
    "scene.modifyComponent": "Modify Component",
    "scene.setComponentMaterial": "Set Component Material",
    "scene.setComponentStaticMesh": "Set Component Static Mesh",
    "scene.addActorTag": "Add Actor Tag",
    "scene.setActorFolder": "Set Actor Folder",
    "scene.addActorLabelPrefix": "Add Label Prefix",
    "scene.duplicateActors": "Duplicate Actors",
    "scene.setDirectionalLightIntensity": "Set Directional Light Intensity",
    "scene.setFogDensity": "Set Fog Density",
    "scene.setPostProcessExposureCompensation": "Set Exposure Compensation",
    "landscape.sculpt": "Landscape Sculpt",
    "landscape.paintLayer": "Landscape Paint Layer",
    "landscape.generate": "Landscape Generate",
    "session.beginTransaction": "Begin Internal Transaction",
    "session.commitTransaction": "Commit Internal Transaction",
    "session.rollbackTransaction": "Rollback Internal Transaction",
}

PlannedAction = Annotated[
    Union[
        GetSceneSummary,
        GetSelection,
        EditorUndo,
        EditorRedo,
        ModifyActor,
        CreateActor,
        DeleteActor,
        ModifyComponent,
        SetComponentMaterial,
        SetComponentStaticMesh,
        AddActorTag,
        SetActorFolder,
        AddActorLabelPrefix,
        DuplicateActors,
        SetDirectionalLightIntensity,
        SetFogDensity,
        SetPostProcessExposure,
        LandscapeSculpt,
        LandscapePaintLayer,
        LandscapeGenerate,
        BeginTransaction,
        CommitTransaction,
        RollbackTransaction,
    ],
    Field(discriminator="command"),
]

planned_action_adapter: TypeAdapter[PlannedAction] = TypeAdapter(PlannedAction)


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def normalize_risk(value: Any) -> str:
    """Map a server risk string onto low/medium/high. Unknown values are low."""
    if isinstance(value, str) and value.strip().lower() in RISK_LEVELS:
        return value.strip().lower()
    return "low"


def build_action(command: str, params: Any, risk: Any = None) -> ActionBase:
    """
    Build one typed action from a wire command identifier and params object.

    Raises UnknownCommandError for identifiers outside the command table and
    ActionValidationError when the params fail the kind's validation.
    """
    if not isinstance(command, str) or command not in ACTION_TYPES:
        raise UnknownCommandError(f"Unrecognized command: {command!r}")

    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise ActionValidationError(f"{command}: params must be an object")

    data = {key: value for key, value in params.items() if key not in _RUNTIME_KEYS}
    data["command"] = command
    data["risk"] = normalize_risk(risk)

    try:
        return planned_action_adapter.validate_python(data)
    except ValidationError as exc:
        raise ActionValidationError(f"{command}: {exc.error_count()} invalid field(s)") from exc


def preview_text(action: ActionBase) -> str:
    """Deterministic one-line rendering: `[Risk] Label: key params`."""
    details = action.describe()
    head = f"[{action.risk.capitalize()}] {action.label}"
    return f"{head}: {details}" if details else head


def action_to_wire(action: ActionBase) -> dict[str, Any]:
    """Render an action back into the `{command, params, risk}` descriptor shape."""
    params = action.model_dump(
        by_alias=True,
        exclude_none=True,
        exclude={"command", "risk", "approved", "state", "attempt_count"},
    )
    return {"command": action.command, "params": params, "risk": action.risk}
