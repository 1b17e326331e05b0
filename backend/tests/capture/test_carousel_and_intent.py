"""
Unit tests for CarouselDetector, IntentClassifier and InteractiveRuleTable.

Tests the click classification layer that sits in front of recording.
"""

from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "app"))

from capture.core.intent_classifier import ClickContext, IntentClassifier
from capture.core.interactive_rules import InteractiveRule, InteractiveRuleTable
from capture.selectors.carousel import CarouselDetector


class TestCarouselDetection:
    """Test carousel control detection tiers."""

    def test_framework_signature(self, make_document):
        """Test detection of a known carousel library control."""
        document = make_document('<div class="swiper"><div class="swiper-button-next"></div></div>')
        detector = CarouselDetector(document)

        detection = detector.detect(document.query(".swiper-button-next"))

        assert detection.is_carousel is True
        assert detection.detection_method == "framework"
        assert detection.library == "swiper"

    def test_arrow_pattern_with_direction(self, make_document):
        """Test arrow classes with a direction class."""
        document = make_document('<button class="carousel-arrow next">n</button>')
        detector = CarouselDetector(document)

        detection = detector.detect(document.query("button"))

        assert detection.detection_method == "pattern"
        assert detection.confidence == CarouselDetector.PATTERN_CONFIDENCE

    def test_arrow_pattern_without_direction_scores_lower(self, make_document):
        """Test that arrow classes without a direction score lower."""
        document = make_document('<button class="carousel-arrow">n</button>')
        detector = CarouselDetector(document)

        detection = detector.detect(document.query("button"))

        assert detection.confidence == CarouselDetector.PATTERN_NO_DIRECTION_CONFIDENCE

    def test_aria_label(self, make_document):
        """Test detection from a next-slide aria label."""
        document = make_document('<button aria-label="Next slide">&gt;</button>')
        detector = CarouselDetector(document)

        assert detector.is_carousel_control(document.query("button")) is True

    def test_direction_class_in_carousel_ancestor(self, make_document):
        """Test the heuristic tier."""
        document = make_document('<div class="slider"><div><button class="next">Next</button></div></div>')
        detector = CarouselDetector(document)

        detection = detector.detect(document.query("button"))

        assert detection.detection_method == "heuristic"

    def test_direction_class_alone_is_not_carousel(self, make_document):
        """Test that a bare direction class outside a carousel is not a control."""
        document = make_document('<div class="wizard"><button class="next">Next</button></div>')
        detector = CarouselDetector(document)

        assert detector.is_carousel_control(document.query("button")) is False

    def test_disabled_control_is_not_carousel(self, make_document):
        """Test that disabled controls are never carousel controls."""
        document = make_document(
            '<button class="slick-next" disabled>n</button><button class="slick-prev slick-disabled">p</button>'
        )
        detector = CarouselDetector(document)

        for button in document.query_all("button"):
            assert detector.is_carousel_control(button) is False

    def test_tier_ordering(self):
        """Test that framework > pattern > heuristic confidence."""
        assert CarouselDetector.FRAMEWORK_CONFIDENCE > CarouselDetector.PATTERN_CONFIDENCE
        assert CarouselDetector.PATTERN_CONFIDENCE > CarouselDetector.HEURISTIC_CONFIDENCE

    def test_control_for_icon(self, make_document):
        """Test that an icon resolves to its enclosing control."""
        document = make_document('<button class="carousel-control-next"><span class="icon"></span></button>')
        detector = CarouselDetector(document)

        assert detector.control_for(document.query("span.icon")) is document.query("button")

    def test_build_context(self, make_document):
        """Test click metadata for a carousel control."""
        document = make_document(
            '<div class="product-gallery"><img class="slide" src="a.jpg"><button class="slick-prev">p</button></div>'
        )
        detector = CarouselDetector(document)

        context = detector.build_context(document.query("button"), "#gallery")

        assert context.direction == "prev"
        assert context.library == "slick"
        assert context.is_custom_implementation is False
        assert context.carousel_type == "product-gallery"
        assert context.container_selector == "#gallery"
        assert context.affects_element == "img.slide"


class TestIntentClassifier:
    """Test the click intent cascade."""

    def classify(self, document, selector, **context):
        return IntentClassifier(document).classify(document.query(selector), ClickContext(**context))

    def test_carousel_wins(self, make_document):
        """Test that carousel context takes precedence over everything."""
        document = make_document('<form><button>Go</button></form>')

        intent = self.classify(document, "button", is_carousel=True, is_form_submit=True)

        assert intent.type == "carousel-navigation"
        assert intent.allow_multiple is True

    def test_form_submit(self, make_document):
        """Test the form-submit tier."""
        document = make_document('<form><button>Go</button></form>')

        intent = self.classify(document, "button", is_form_submit=True)

        assert intent.type == "form-submit"
        assert intent.requires_delay is True

    def test_pagination(self, make_document):
        """Test pagination from two indicators."""
        document = make_document('<nav class="pagination"><a aria-label="Page 2" href="?page=2">2</a></nav>')

        assert self.classify(document, "a").type == "pagination"

    def test_increment(self, make_document):
        """Test increment buttons."""
        document = make_document('<div class="qty"><button>+</button></div>')

        assert self.classify(document, "button").type == "increment"

    def test_toggle(self, make_document):
        """Test switch roles."""
        document = make_document('<div role="switch">Dark mode</div>')

        assert self.classify(document, "div").type == "toggle"

    def test_navigation(self, make_document):
        """Test real links."""
        document = make_document('<a href="/about">About</a>')

        assert self.classify(document, "a").type == "navigation"

    def test_javascript_link_is_generic(self, make_document):
        """Test that javascript: links are not navigation."""
        document = make_document('<a href="javascript:void(0)">Open</a>')

        intent = self.classify(document, "a")

        assert intent.type == "generic-click"
        assert intent.allow_multiple is False


class TestInteractiveRules:
    """Test interactive element resolution."""

    def test_span_inside_button_resolves_to_button(self, make_document):
        """Test that a click on a button's label resolves to the button."""
        document = make_document('<button id="buy"><span>Buy now</span></button>')
        table = InteractiveRuleTable(document)

        assert table.find_interactive_element(document.query("span")) is document.query("#buy")

    def test_svg_part_resolves_to_link(self, make_document):
        """Test that SVG parts walk up to their clickable ancestor."""
        document = make_document('<a href="/cart" id="cart"><svg><path d="M0 0"></path></svg></a>')
        table = InteractiveRuleTable(document)

        assert table.find_interactive_element(document.query("path")) is document.query("#cart")

    def test_svg_without_interactive_ancestor(self, make_document):
        """Test that decorative SVGs are not recorded."""
        document = make_document('<div class="hero"><svg><circle r="4"></circle></svg></div>')
        table = InteractiveRuleTable(document)

        assert table.find_interactive_element(document.query("circle")) is None

    def test_cursor_pointer_is_interactive(self, make_document):
        """Test that pointer cursors mark custom controls."""
        document = make_document('<div style="cursor: pointer">Card</div>')
        table = InteractiveRuleTable(document)

        assert table.matching_rule(document.query("div")).name == "cursor-pointer"

    def test_plain_text_is_not_interactive(self, make_document):
        """Test that plain containers are skipped."""
        document = make_document('<div><p>Just text</p></div>')
        table = InteractiveRuleTable(document)

        assert table.find_interactive_element(document.query("p")) is None

    def test_custom_rule(self, make_document):
        """Test that rules can be extended."""
        document = make_document('<div data-action="open">Open</div>')
        table = InteractiveRuleTable(document)
        table.add_rule(InteractiveRule("data-action", 35, lambda caps: "data-action" in caps.data_attributes))

        rule = table.matching_rule(document.query("div"))

        assert rule.name == "data-action"
