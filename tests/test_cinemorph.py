import base64
import importlib.util
import io
import json
import os
import pathlib
import sys
import tempfile
import unittest
from unittest import mock

from PIL import Image

ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "scripts"))
SPEC = importlib.util.spec_from_file_location("cinemorph", ROOT / "scripts" / "cinemorph.py")
if SPEC is None or SPEC.loader is None:
    raise RuntimeError("Unable to load cinemorph module for tests")
cinemorph = importlib.util.module_from_spec(SPEC)
sys.modules["cinemorph"] = cinemorph
SPEC.loader.exec_module(cinemorph)
from cinemorph_api.api import build_request, save_artifact
from cinemorph_api.core.composer import compose
from cinemorph_api.core.contracts import LandingPosition, OutputType, ProcessingStage, StageId, StageStatus, TextMode
from cinemorph_api.core.credentials import EnvCredentialProvider, api_key_for, write_env_key
from cinemorph_api.core.errors import InvalidRequest, MissingCredential, ModelRefusal, user_message
from cinemorph_api.core.receipts import build_receipt
from cinemorph_api.core.router import normalize_provider, resolve_provider
from cinemorph_api.core.utils import (
    artifact_from_data_uri,
    build_artifact,
    decode_data_uri,
    extension_from_mime,
    read_media,
    sniff_mime,
)


def _png(width: int = 6, height: int = 2) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (30, 60, 90)).save(buf, format="PNG")
    return buf.getvalue()


class TestParser(unittest.TestCase):
    def test_defaults(self) -> None:
        args = cinemorph.build_parser().parse_args([])
        self.assertEqual(args.output_type, "square-feed")
        self.assertEqual(args.landing_position, "center")
        self.assertFalse(args.preserve_text)
        self.assertIsNone(args.refine)

    def test_repeatable_refine(self) -> None:
        args = cinemorph.build_parser().parse_args(
            ["--brief", "x", "--refine", "brighter", "--refine", "  ", "--refine", "crop tighter"]
        )
        self.assertEqual(cinemorph._refinements(args), ["brighter", "crop tighter"])

    def test_main_rejects_empty_request(self) -> None:
        with mock.patch.object(cinemorph, "_load_repo_dotenv", return_value=None), mock.patch.object(
            cinemorph, "_ensure_credentials"
        ) as ensure:
            self.assertEqual(cinemorph.main(["--no-color"]), 2)
        ensure.assert_not_called()

    def test_main_rejects_missing_file(self) -> None:
        with mock.patch.object(cinemorph, "_load_repo_dotenv", return_value=None):
            self.assertEqual(cinemorph.main(["--subject", "/nonexistent/me.jpg"]), 2)


class TestStageReporter(unittest.TestCase):
    def test_format_stage(self) -> None:
        reporter = cinemorph._StageReporter(color=False)
        stage = ProcessingStage(
            id=StageId.RELIGHTING,
            name="Relighting & Texture",
            status=StageStatus.COMPLETED,
            details="done",
        )
        self.assertEqual(reporter.format_stage(stage), "[x] Relighting & Texture - done")
        failed = ProcessingStage(id=StageId.FINAL_RENDER, name="Final 4K Render", status=StageStatus.ERROR)
        self.assertEqual(reporter.format_stage(failed), "[!] Final 4K Render")


class TestBuildRequest(unittest.TestCase):
    def test_normalizes_inputs(self) -> None:
        request = build_request(
            reference=_png(),
            brief="  make it a winter scene ",
            output_type="Thumbnail",
            landing_position="LEFT",
            preserve_text=True,
            custom_text=" Sale Now ",
        )
        self.assertIsNone(request.subject_image)
        self.assertEqual(request.reference_image.mime_type, "image/png")
        self.assertEqual(request.spec.output_type, OutputType.THUMBNAIL)
        self.assertEqual(request.spec.landing_position, LandingPosition.LEFT)
        self.assertEqual(request.text_mode, TextMode.CUSTOM)
        self.assertEqual(request.custom_text, "Sale Now")
        self.assertEqual(request.brief, "make it a winter scene")

    def test_url_inputs_rejected(self) -> None:
        with self.assertRaises(InvalidRequest):
            build_request(subject="https://example.com/me.jpg")

    def test_empty_bytes_rejected(self) -> None:
        with self.assertRaises(InvalidRequest):
            read_media(b"", "subject")


class TestMediaHelpers(unittest.TestCase):
    def test_sniff_and_extension(self) -> None:
        self.assertEqual(sniff_mime(_png()), "image/png")
        self.assertEqual(sniff_mime(b"\xff\xd8\xff\xe0rest"), "image/jpeg")
        self.assertIsNone(sniff_mime(b"plain"))
        self.assertEqual(extension_from_mime("image/jpeg"), "jpg")
        self.assertEqual(extension_from_mime(None), "png")

    def test_data_uri_import(self) -> None:
        data = _png()
        artifact = artifact_from_data_uri("data:image/png;base64," + base64.b64encode(data).decode("ascii"))
        self.assertEqual(artifact.data, data)
        self.assertEqual((artifact.width, artifact.height), (6, 2))

    def test_bad_data_uri(self) -> None:
        for value in ("not a uri", "data:image/png,raw", "data:image/png;base64,@@@"):
            with self.subTest(value=value):
                with self.assertRaises(InvalidRequest):
                    decode_data_uri(value)

    def test_unreadable_image_has_no_dimensions(self) -> None:
        artifact = build_artifact(b"\x89PNG\r\n\x1a\ntruncated")
        self.assertEqual(artifact.mime_type, "image/png")
        self.assertIsNone(artifact.width)


class TestReceipts(unittest.TestCase):
    def test_receipt_omits_image_bytes(self) -> None:
        request = build_request(reference=_png(), brief="neon", output_type="story")
        payload = compose(request)
        artifact = build_artifact(_png(), "image/png", provider="gemini", model="m")
        receipt = build_receipt(
            artifact=artifact,
            image_path=pathlib.Path("out.png"),
            receipt_path=pathlib.Path("receipt.json"),
            request=request,
            payload=payload,
        )
        self.assertEqual(receipt["artifact"]["data"], "<omitted>")
        self.assertEqual(receipt["artifact"]["data_uri"], "<omitted>")
        self.assertEqual(receipt["request"]["reference_image"]["data"], "<omitted>")
        self.assertEqual(receipt["composition"]["scenario"], "guided-reimagination")
        self.assertEqual(receipt["composition"]["aspect_ratio"], "9:16")
        self.assertNotIn(artifact.data_uri, json.dumps(receipt))

    def test_receipt_records_backend_exchange(self) -> None:
        artifact = build_artifact(
            _png(),
            "image/png",
            provider="gemini",
            metadata={
                "aspect_ratio": "16:9",
                "provider_request": {"model": "m", "instruction": "ROLE: ...", "data": b"raw"},
                "provider_response": {"candidates": 1},
                "usage": {"total_token_count": 40},
            },
        )
        receipt = build_receipt(
            artifact=artifact,
            image_path=pathlib.Path("out.png"),
            receipt_path=pathlib.Path("receipt.json"),
        )
        self.assertEqual(receipt["provider_request"]["instruction"], "ROLE: ...")
        self.assertEqual(receipt["provider_request"]["data"], "<omitted>")
        self.assertEqual(receipt["provider_response"], {"candidates": 1})
        self.assertEqual(receipt["usage"], {"total_token_count": 40})
        self.assertEqual(receipt["artifact"]["metadata"], {"aspect_ratio": "16:9"})
        json.dumps(receipt)

    def test_save_artifact_writes_pair(self) -> None:
        artifact = build_artifact(_png(), "image/png", provider="gemini")
        with tempfile.TemporaryDirectory() as tmpdir:
            out_dir = pathlib.Path(tmpdir)
            first = save_artifact(artifact, out_dir, refinement="brighter")
            second = save_artifact(artifact, out_dir)
            self.assertNotEqual(first[0], second[0])
            self.assertEqual(first[0].read_bytes(), artifact.data)
            receipt = json.loads(first[1].read_text(encoding="utf-8"))
            self.assertEqual(receipt["refinement"], "brighter")
            self.assertEqual(receipt["artifacts"]["image_path"], str(first[0]))


class TestProviders(unittest.TestCase):
    def test_aliases(self) -> None:
        self.assertEqual(normalize_provider("Nano Banana"), "gemini")
        self.assertEqual(normalize_provider("gpt-image-1"), "openai")
        self.assertEqual(normalize_provider(None), "auto")

    def test_env_default(self) -> None:
        with mock.patch.dict(os.environ, {"CINEMORPH_PROVIDER": "openai"}):
            self.assertEqual(resolve_provider(None), "openai")
            self.assertEqual(resolve_provider("google"), "gemini")
        with mock.patch.dict(os.environ, {}, clear=True):
            self.assertEqual(resolve_provider("auto"), "gemini")


class TestCredentials(unittest.TestCase):
    def test_key_lookup_order(self) -> None:
        with mock.patch.dict(os.environ, {"GOOGLE_API_KEY": "g", "API_KEY": "a"}, clear=True):
            self.assertEqual(api_key_for("gemini"), "g")

    def test_request_credential_sets_env_and_dotenv(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir, mock.patch.dict(os.environ, {}, clear=True):
            dotenv_path = pathlib.Path(tmpdir) / ".env"
            dotenv_path.write_text('OTHER="1"\n', encoding="utf-8")
            provider = EnvCredentialProvider(
                ("GEMINI_API_KEY",), prompt=lambda key: " new-key ", dotenv_path=dotenv_path
            )
            self.assertFalse(provider.has_credential())
            self.assertTrue(provider.request_credential())
            self.assertTrue(provider.has_credential())
            self.assertEqual(os.environ["GEMINI_API_KEY"], "new-key")
            self.assertIn('GEMINI_API_KEY="new-key"', dotenv_path.read_text(encoding="utf-8"))

    def test_declined_prompt(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            self.assertFalse(EnvCredentialProvider(("OPENAI_API_KEY",), prompt=lambda key: None).request_credential())
            self.assertFalse(EnvCredentialProvider(("OPENAI_API_KEY",)).request_credential())

    def test_write_env_key_replaces_line(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            dotenv_path = pathlib.Path(tmpdir) / ".env"
            write_env_key(dotenv_path, "OPENAI_API_KEY", "one")
            write_env_key(dotenv_path, "OPENAI_API_KEY", "two")
            self.assertEqual(dotenv_path.read_text(encoding="utf-8"), 'OPENAI_API_KEY="two"\n')


class TestUserMessage(unittest.TestCase):
    def test_messages(self) -> None:
        self.assertEqual(user_message(ModelRefusal("Unsafe request")), "Unsafe request")
        self.assertIn("API key", user_message(MissingCredential("x")))
        self.assertEqual(user_message(RuntimeError("short")), "short")
        self.assertEqual(user_message(RuntimeError("x" * 51)), "Generation failed: check logs for details")


if __name__ == "__main__":
    unittest.main()
