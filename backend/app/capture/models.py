"""
Action and selector models.

Every recorded gesture becomes one member of the Action union. Models
serialize with camelCase keys (model_dump(by_alias=True)) for the
downstream test generator.
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel


class CaptureModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# ==================== Selectors ====================

class SelectorType(str, Enum):
    """Candidate families, in default replay order"""
    ID = "id"
    DATA_TEST_ID = "dataTestId"
    ARIA_LABEL = "ariaLabel"
    NAME = "name"
    CSS = "css"
    TEXT = "text"
    TEXT_CONTAINS = "textContains"
    XPATH = "xpath"
    XPATH_ABSOLUTE = "xpathAbsolute"
    POSITION = "position"

    @property
    def field_name(self) -> str:
        return _SELECTOR_FIELDS[self]


_SELECTOR_FIELDS = {
    SelectorType.ID: "id",
    SelectorType.DATA_TEST_ID: "data_test_id",
    SelectorType.ARIA_LABEL: "aria_label",
    SelectorType.NAME: "name",
    SelectorType.CSS: "css",
    SelectorType.TEXT: "text",
    SelectorType.TEXT_CONTAINS: "text_contains",
    SelectorType.XPATH: "xpath",
    SelectorType.XPATH_ABSOLUTE: "xpath_absolute",
    SelectorType.POSITION: "position",
}

STRUCTURAL_SELECTORS = (
    SelectorType.ID,
    SelectorType.DATA_TEST_ID,
    SelectorType.ARIA_LABEL,
    SelectorType.NAME,
    SelectorType.CSS,
)
CONTENT_SELECTORS = (SelectorType.TEXT, SelectorType.TEXT_CONTAINS)
FALLBACK_SELECTORS = (SelectorType.XPATH, SelectorType.XPATH_ABSOLUTE, SelectorType.POSITION)


class PositionSelector(CaptureModel):
    parent: str
    index: int


class SelectorValidation(CaptureModel):
    css_matches: int = 0
    xpath_matches: int = 0
    strategy: str = "none"
    is_unique: bool = False


class VisualPosition(CaptureModel):
    x: float = 0.0
    y: float = 0.0
    viewport_x: float = 0.0
    viewport_y: float = 0.0


class SelectorFallback(CaptureModel):
    visual_position: VisualPosition = Field(default_factory=VisualPosition)
    text_content: str = ""
    sibling_index: int = 0


class SelectorStrategy(CaptureModel):
    """
    Ranked bundle of alternative identifiers for one element.

    A replay engine tries `priority` in order until one candidate resolves
    to exactly one live element.
    """
    id: Optional[str] = None
    data_test_id: Optional[str] = None
    aria_label: Optional[str] = None
    name: Optional[str] = None
    css: Optional[str] = None
    xpath: Optional[str] = None
    xpath_absolute: Optional[str] = None
    text: Optional[str] = None
    text_contains: Optional[str] = None
    position: Optional[PositionSelector] = None

    priority: List[SelectorType] = Field(default_factory=list)

    validation: Optional[SelectorValidation] = None
    fallback: Optional[SelectorFallback] = None

    @model_validator(mode="after")
    def _priority_references_populated(self):
        for selector_type in self.priority:
            if getattr(self, selector_type.field_name) is None:
                raise ValueError(f"priority lists '{selector_type.value}' but that candidate is empty")
        return self

    def value_for(self, selector_type: SelectorType) -> Any:
        return getattr(self, selector_type.field_name)

    @property
    def primary(self) -> Optional[SelectorType]:
        return self.priority[0] if self.priority else None


# ==================== Click metadata ====================

IntentType = Literal[
    "carousel-navigation",
    "form-submit",
    "pagination",
    "increment",
    "toggle",
    "navigation",
    "generic-click",
]


class ClickIntent(CaptureModel):
    """Semantic intent of a click; produced once and never mutated"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    type: IntentType
    allow_multiple: bool
    requires_delay: bool
    confidence: int


class CarouselContext(CaptureModel):
    is_carousel_control: bool = True
    direction: Literal["next", "prev"] = "next"
    library: Optional[str] = None
    confidence: int = 0
    container_selector: Optional[str] = None
    carousel_type: str = "image-gallery"
    detection_method: str = "heuristic"
    is_custom_implementation: bool = True
    is_disabled: bool = False
    affects_element: Optional[str] = None


class ActionValidation(CaptureModel):
    is_duplicate: bool = False
    duplicate_of: Optional[str] = None
    is_os_event: bool = False
    confidence: int = 100
    flags: List[str] = Field(default_factory=list)


class Coordinates(CaptureModel):
    x: float = 0.0
    y: float = 0.0


# ==================== Smart-wait context ====================

class ElementState(CaptureModel):
    visible: bool = True
    enabled: bool = True
    in_viewport: Optional[bool] = None
    opacity: str = "1"
    display: str = ""
    z_index: str = "auto"
    image_complete: Optional[bool] = None
    image_natural_width: Optional[int] = None
    image_natural_height: Optional[int] = None


class WaitConditions(CaptureModel):
    element_visible: bool = True
    parent_visible: bool = True
    element_stable: bool = True
    image_loaded: Optional[bool] = None


NavigationIntent = Literal[
    "submit-form",
    "checkout-complete",
    "close-modal-and-redirect",
    "navigate-to-page",
    "logout",
    "none",
]


class UrlChangeExpectation(CaptureModel):
    type: Literal["success", "redirect", "same-page", "error"] = "same-page"
    patterns: List[str] = Field(default_factory=list)
    is_success_flow: bool = False
    before_url: Optional[str] = None
    after_url: Optional[str] = None


class ActionContext(CaptureModel):
    parent_container: Optional[str] = None
    is_lazy_loaded: Optional[bool] = None
    is_dropdown_item: Optional[bool] = None
    navigation_intent: Optional[NavigationIntent] = None
    expected_url_change: Optional[UrlChangeExpectation] = None
    is_terminal_action: Optional[bool] = None


class ListContainer(CaptureModel):
    selector: str
    item_selector: str


class ContentSignature(CaptureModel):
    element_type: Literal["list-item", "card", "table-row", "grid-item"]
    list_container: ListContainer
    content_fingerprint: Dict[str, str]
    visual_hints: Dict[str, bool] = Field(default_factory=dict)
    fallback_position: int = 0


# ==================== Actions ====================

class BaseAction(CaptureModel):
    id: str
    timestamp: int
    completed_at: int = 0
    url: str = ""

    element_state: Optional[ElementState] = None
    wait_conditions: Optional[WaitConditions] = None
    context: Optional[ActionContext] = None
    content_signature: Optional[ContentSignature] = None


class SelectedOption(CaptureModel):
    text: str
    value: str
    index: int
    label: Optional[str] = None


class ClickAction(BaseAction):
    type: Literal["click"] = "click"
    selector: SelectorStrategy
    tag_name: str
    text: Optional[str] = None
    coordinates: Coordinates = Field(default_factory=Coordinates)
    coordinates_relative_to: Literal["element", "viewport", "document"] = "element"
    button: Literal["left", "right", "middle"] = "left"
    click_count: int = 1
    modifiers: List[str] = Field(default_factory=list)

    click_type: Literal["standard", "toggle-input", "submit", "carousel-navigation"] = "standard"
    input_type: Optional[Literal["checkbox", "radio"]] = None
    checked: Optional[bool] = None
    is_programmatic: Optional[bool] = None

    expects_navigation: Optional[bool] = None
    is_ajax_form: Optional[bool] = None

    is_in_dropdown: Optional[bool] = None
    requires_parent_open: Optional[bool] = None
    parent_selector: Optional[SelectorStrategy] = None
    parent_trigger: Optional[SelectorStrategy] = None
    related_action: Optional[str] = None

    carousel_context: Optional[CarouselContext] = None
    click_intent: Optional[ClickIntent] = None
    validation: Optional[ActionValidation] = None


class InputAction(BaseAction):
    type: Literal["input"] = "input"
    selector: SelectorStrategy
    tag_name: str
    value: str
    input_type: str = "text"
    is_sensitive: bool = False
    simulation_type: Literal["type", "setValue"] = "type"
    typing_delay: Optional[int] = None
    variable_name: Optional[str] = None


class SelectAction(BaseAction):
    type: Literal["select"] = "select"
    selector: SelectorStrategy
    tag_name: Literal["select"] = "select"
    selected_value: str = ""
    selected_text: str = ""
    selected_index: int = -1
    is_multiple: bool = False
    selected_options: Optional[List[SelectedOption]] = None
    selected_option: Optional[SelectedOption] = None
    select_id: Optional[str] = None
    select_name: Optional[str] = None


class NavigationAction(BaseAction):
    type: Literal["navigation"] = "navigation"
    from_url: str = Field(alias="from")
    to_url: str = Field(alias="to")
    navigation_trigger: Literal["click", "form-submit", "manual", "redirect", "back", "forward"] = "manual"
    related_action: Optional[str] = None
    wait_until: Literal["load", "domcontentloaded", "networkidle"] = "load"
    duration: int = 0


class ScrollAction(BaseAction):
    type: Literal["scroll"] = "scroll"
    scroll_x: float = 0.0
    scroll_y: float = 0.0
    element: Union[Literal["window"], SelectorStrategy] = "window"


class KeypressAction(BaseAction):
    type: Literal["keypress"] = "keypress"
    key: str
    code: str = ""
    modifiers: List[str] = Field(default_factory=list)


class SubmitAction(BaseAction):
    type: Literal["submit"] = "submit"
    selector: SelectorStrategy
    tag_name: Literal["form"] = "form"
    form_data: Optional[Dict[str, str]] = None


class CheckpointAction(BaseAction):
    type: Literal["checkpoint"] = "checkpoint"
    check_type: Literal["urlMatch", "elementVisible", "elementText", "pageLoad"]
    expected_url: Optional[str] = None
    actual_url: Optional[str] = None
    selector: Optional[SelectorStrategy] = None
    expected_value: Optional[str] = None
    actual_value: Optional[str] = None
    passed: bool = True


class HoverAction(BaseAction):
    type: Literal["hover"] = "hover"
    selector: SelectorStrategy
    tag_name: str
    text: Optional[str] = None
    duration: int = 0
    is_dropdown_parent: bool = True


ACTION_TYPES = (
    ClickAction,
    InputAction,
    SelectAction,
    NavigationAction,
    ScrollAction,
    KeypressAction,
    SubmitAction,
    CheckpointAction,
    HoverAction,
)

Action = Annotated[
    Union[
        ClickAction,
        InputAction,
        SelectAction,
        NavigationAction,
        ScrollAction,
        KeypressAction,
        SubmitAction,
        CheckpointAction,
        HoverAction,
    ],
    Field(discriminator="type"),
]

_action_adapter = TypeAdapter(Action)


def parse_action(data: Dict[str, Any]):
    """Validate a raw dict (camelCase or snake_case keys) into its Action variant."""
    return _action_adapter.validate_python(data)


def assert_exhaustive(table: Dict[type, Any], site: str):
    """Fail fast when a per-type dispatch table misses an Action variant."""
    missing = [cls.__name__ for cls in ACTION_TYPES if cls not in table]
    if missing:
        raise TypeError(f"{site} has no entry for: {', '.join(missing)}")


def generate_action_id(sequence: int) -> str:
    return f"act_{sequence:03d}"
