import itertools
import pathlib
import sys
import unittest

ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "scripts"))
from cinemorph_api.core.composer import SEGMENT_ORDER, compose, compose_refinement
from cinemorph_api.core.contracts import (
    GenerationRequest,
    LandingPosition,
    MediaInput,
    OutputSpec,
    OutputType,
    Scenario,
    TextMode,
)
from cinemorph_api.core.errors import InvalidRequest
from cinemorph_api.core.formats import effective_position, refinement_aspect_ratio, resolve_format, resolve_image_size
from cinemorph_api.core.overlay import CLEAN_INSTRUCTION, MOCKUP_INSTRUCTION, resolve_text_instruction, text_mode_for
from cinemorph_api.core.scenarios import IdentityTransfer, scenario_for, select_scenario


SUBJECT = MediaInput(data=b"subject-bytes", mime_type="image/jpeg", name="subject")
REFERENCE = MediaInput(data=b"reference-bytes", mime_type="image/png", name="reference")


def _request(
    subject=None,
    reference=None,
    brief="",
    output_type=OutputType.SQUARE_FEED,
    position=LandingPosition.CENTER,
    preserve_text=False,
    custom_text="",
    analysis=None,
) -> GenerationRequest:
    return GenerationRequest(
        spec=OutputSpec(output_type=output_type, landing_position=position),
        subject_image=subject,
        reference_image=reference,
        analysis_context=analysis,
        text_mode=text_mode_for(preserve_text, custom_text),
        custom_text=custom_text,
        creative_brief=brief,
    )


class TestScenarioSelection(unittest.TestCase):
    def test_all_input_combinations(self) -> None:
        expected = {
            (True, True): Scenario.IDENTITY_TRANSFER,
            (True, False): Scenario.GENERATIVE_PLACEMENT,
            (False, True): Scenario.GUIDED_REIMAGINATION,
        }
        for subject, reference, brief in itertools.product([True, False], repeat=3):
            with self.subTest(subject=subject, reference=reference, brief=brief):
                if not subject and not reference and not brief:
                    with self.assertRaises(InvalidRequest):
                        scenario_for(subject, reference, brief)
                    continue
                want = expected.get((subject, reference), Scenario.PURE_SYNTHESIS)
                self.assertEqual(scenario_for(subject, reference, brief), want)

    def test_whitespace_brief_is_absent(self) -> None:
        with self.assertRaises(InvalidRequest):
            select_scenario(_request(brief="   \n"))

    def test_identity_transfer_puts_reference_first(self) -> None:
        variant = select_scenario(_request(subject=SUBJECT, reference=REFERENCE))
        self.assertIsInstance(variant, IdentityTransfer)
        self.assertEqual(variant.media, (REFERENCE, SUBJECT))


class TestFormats(unittest.TestCase):
    def test_every_combination_resolves(self) -> None:
        for output_type, position in itertools.product(OutputType, LandingPosition):
            with self.subTest(output_type=output_type, position=position):
                ratio, instruction = resolve_format(output_type, position)
                self.assertIn(ratio, {"1:1", "9:16", "16:9"})
                self.assertTrue(instruction.startswith("FORMAT:"))

    def test_aspect_ratios(self) -> None:
        self.assertEqual(resolve_format(OutputType.SQUARE_FEED)[0], "1:1")
        self.assertEqual(resolve_format(OutputType.VERTICAL_STORY)[0], "9:16")
        self.assertEqual(resolve_format(OutputType.THUMBNAIL)[0], "16:9")
        self.assertEqual(resolve_format(OutputType.LANDING_HERO, LandingPosition.LEFT)[0], "16:9")
        self.assertEqual(resolve_format(OutputType.LANDING_MOBILE, LandingPosition.TOP)[0], "9:16")

    def test_unknown_output_type_falls_back_to_square(self) -> None:
        self.assertEqual(OutputType.parse("billboard"), OutputType.SQUARE_FEED)
        self.assertEqual(resolve_format("billboard", "left")[0], "1:1")

    def test_output_type_aliases(self) -> None:
        self.assertEqual(OutputType.parse("Ad Stories"), OutputType.VERTICAL_STORY)
        self.assertEqual(OutputType.parse("youtube_thumbnail"), OutputType.THUMBNAIL)
        self.assertEqual(OutputType.parse("hero"), OutputType.LANDING_HERO)
        self.assertEqual(OutputType.parse(None), OutputType.SQUARE_FEED)

    def test_hero_layouts(self) -> None:
        _, left = resolve_format(OutputType.LANDING_HERO, LandingPosition.LEFT)
        self.assertIn("anchored LEFT", left)
        self.assertIn("RIGHT side: clean negative space", left)
        _, right = resolve_format(OutputType.LANDING_HERO, LandingPosition.RIGHT)
        self.assertIn("anchored RIGHT", right)
        self.assertIn("LEFT side: clean negative space", right)
        _, center = resolve_format(OutputType.LANDING_HERO, LandingPosition.CENTER)
        self.assertIn("CENTERED", center)

    def test_mobile_layouts(self) -> None:
        _, top = resolve_format(OutputType.LANDING_MOBILE, LandingPosition.TOP)
        self.assertIn("TOP half", top)
        self.assertIn("extend the background", top)
        _, bottom = resolve_format(OutputType.LANDING_MOBILE, LandingPosition.BOTTOM)
        self.assertIn("BOTTOM half", bottom)

    def test_positions_clamped_per_output_type(self) -> None:
        self.assertEqual(
            effective_position(OutputType.LANDING_HERO, LandingPosition.TOP), LandingPosition.CENTER
        )
        self.assertEqual(
            effective_position(OutputType.LANDING_MOBILE, LandingPosition.LEFT), LandingPosition.TOP
        )
        self.assertEqual(LandingPosition.parse("diagonal"), LandingPosition.CENTER)

    def test_refinement_ratio(self) -> None:
        self.assertEqual(refinement_aspect_ratio("vertical-story"), "9:16")
        self.assertEqual(refinement_aspect_ratio(OutputType.LANDING_HERO), "16:9")
        self.assertEqual(refinement_aspect_ratio(None), "1:1")

    def test_image_size_hint(self) -> None:
        self.assertEqual(resolve_image_size(None), "4K")
        self.assertEqual(resolve_image_size("2k"), "2K")
        self.assertEqual(resolve_image_size("1920x1080"), "2K")
        self.assertEqual(resolve_image_size("1024x1024"), "1K")


class TestTextPolicy(unittest.TestCase):
    def test_modes(self) -> None:
        self.assertEqual(text_mode_for(False, "Sale Now"), TextMode.CLEAN)
        self.assertEqual(text_mode_for(True, ""), TextMode.MOCKUP)
        self.assertEqual(text_mode_for(True, "  "), TextMode.MOCKUP)
        self.assertEqual(text_mode_for(True, "Sale Now"), TextMode.CUSTOM)

    def test_custom_text_rendered_literally(self) -> None:
        instruction = resolve_text_instruction(True, "Sale Now")
        self.assertIn('"Sale Now"', instruction)

    def test_clean_ignores_custom_text(self) -> None:
        instruction = resolve_text_instruction(False, "Sale Now")
        self.assertEqual(instruction, CLEAN_INSTRUCTION)
        self.assertNotIn("Sale Now", instruction)

    def test_mockup_without_custom_text(self) -> None:
        self.assertEqual(resolve_text_instruction(True, ""), MOCKUP_INSTRUCTION)


class TestCompose(unittest.TestCase):
    def test_segment_order_full(self) -> None:
        payload = compose(_request(subject=SUBJECT, reference=REFERENCE, brief="rain", analysis="85mm, key left"))
        self.assertEqual(payload.segment_kinds(), SEGMENT_ORDER)

    def test_optional_segments_dropped_in_order(self) -> None:
        payload = compose(_request(reference=REFERENCE))
        kinds = payload.segment_kinds()
        self.assertNotIn("analysis", kinds)
        self.assertNotIn("brief", kinds)
        self.assertEqual(list(kinds), [kind for kind in SEGMENT_ORDER if kind in kinds])

    def test_winter_thumbnail(self) -> None:
        payload = compose(
            _request(reference=REFERENCE, brief="make it a winter scene", output_type=OutputType.THUMBNAIL)
        )
        self.assertEqual(payload.scenario, Scenario.GUIDED_REIMAGINATION)
        self.assertEqual(payload.aspect_ratio, "16:9")
        self.assertEqual(payload.media, (REFERENCE,))
        self.assertIn('CREATIVE DIRECTION: "make it a winter scene"', payload.instruction)
        self.assertIn("YOUTUBE THUMBNAIL", payload.instruction)
        self.assertIn("rim light", payload.instruction)

    def test_identity_transfer_hero_left(self) -> None:
        payload = compose(
            _request(
                subject=SUBJECT,
                reference=REFERENCE,
                output_type=OutputType.LANDING_HERO,
                position=LandingPosition.LEFT,
            )
        )
        self.assertEqual(payload.scenario, Scenario.IDENTITY_TRANSFER)
        self.assertEqual(payload.media, (REFERENCE, SUBJECT))
        self.assertEqual(payload.aspect_ratio, "16:9")
        self.assertIn("LEFT", payload.instruction)
        self.assertIn("RIGHT side: clean negative space", payload.instruction)

    def test_pure_synthesis_has_no_media(self) -> None:
        payload = compose(_request(brief="neon noir detective"))
        self.assertEqual(payload.scenario, Scenario.PURE_SYNTHESIS)
        self.assertEqual(payload.media, ())
        self.assertIn('PROMPT: "neon noir detective"', payload.instruction)

    def test_placement_without_brief_invents_scene(self) -> None:
        payload = compose(_request(subject=SUBJECT))
        self.assertEqual(payload.media, (SUBJECT,))
        self.assertIn("INVENT", payload.instruction)

    def test_quality_uses_image_size(self) -> None:
        payload = compose(_request(brief="x"), image_size="2K")
        self.assertTrue(payload.instruction.endswith(payload.segments[-1].text))
        self.assertIn("2K", payload.segments[-1].text)

    def test_invalid_request_raises(self) -> None:
        with self.assertRaises(InvalidRequest):
            compose(_request())

    def test_refinement_instruction(self) -> None:
        text = compose_refinement("  warm up the skin  ", "9:16")
        self.assertIn('USER REQUEST: "warm up the skin"', text)
        self.assertIn("Do NOT regenerate", text)
        self.assertIn("Output Ratio: 9:16.", text)


if __name__ == "__main__":
    unittest.main()
