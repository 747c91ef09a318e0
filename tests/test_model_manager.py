"""Tests for the ONNX classifier loader and model registry."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import numpy as np
import pytest
from fakes import image_buffer
from PIL import Image

from wingscan.config import Settings
from wingscan.errors import ErrorKind, ModelUnavailable
from wingscan.ml.classifier import ClassifierConfig, OnnxImageClassifier
from wingscan.ml.inference import InferencePool
from wingscan.ml.model_session import ModelSession
from wingscan.ml.model_manager import (
    MODEL_REGISTRY,
    OnnxClassifierLoader,
    load_labels,
    resolve_spec,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_settings(**overrides: object) -> Settings:
    defaults: dict[str, object] = {
        "device": "cpu",
        "models_dir": "/tmp/wingscan_test_models",
        "intra_op_threads": 0,
        "inter_op_threads": 1,
        "inference_timeout": 5.0,
    }
    defaults.update(overrides)
    return Settings(**defaults)  # type: ignore[arg-type]


def _write_config(path: Path, labels: dict[str, str]) -> Path:
    path.write_text(json.dumps({"id2label": labels}), encoding="utf-8")
    return path


def _mock_session(logits: list[float]) -> MagicMock:
    session = MagicMock()
    session.get_inputs.return_value = [MagicMock(name="input")]
    session.get_inputs.return_value[0].name = "pixel_values"
    session.run.return_value = [np.array([logits], dtype=np.float32)]
    return session


# ---------------------------------------------------------------------------
# Model registry tests
# ---------------------------------------------------------------------------


class TestModelRegistry:
    def test_default_variant_lookup(self) -> None:
        spec = resolve_spec(2, 1.0)
        assert spec.name == "mobilenet_v2_1.0_224"
        assert spec.input_size == 224

    def test_unknown_variant_raises_keyerror(self) -> None:
        with pytest.raises(KeyError, match="Unknown model variant"):
            resolve_spec(3, 1.0)

    def test_registry_names_match_keys(self) -> None:
        for name, spec in MODEL_REGISTRY.items():
            assert spec.name == name

    def test_variants_are_unique(self) -> None:
        selectors = {(spec.version, spec.alpha) for spec in MODEL_REGISTRY.values()}
        assert len(selectors) == len(MODEL_REGISTRY)


class TestLoadLabels:
    def test_reads_id2label(self, tmp_path: Path) -> None:
        path = _write_config(tmp_path / "config.json", {"0": "background", "1": "monarch, Danaus plexippus"})
        assert load_labels(path) == {0: "background", 1: "monarch, Danaus plexippus"}

    def test_missing_id2label(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text("{}", encoding="utf-8")
        with pytest.raises(ValueError, match="id2label"):
            load_labels(path)


# ---------------------------------------------------------------------------
# OnnxClassifierLoader tests
# ---------------------------------------------------------------------------


class TestOnnxClassifierLoader:
    @patch("wingscan.ml.model_manager.hf_hub_download")
    def test_ensure_downloaded_fetches_model_and_labels(self, mock_download: MagicMock, tmp_path: Path) -> None:
        mock_download.side_effect = [str(tmp_path / "onnx" / "model.onnx"), str(tmp_path / "config.json")]
        settings = _make_settings(models_dir=str(tmp_path))
        loader = OnnxClassifierLoader(settings, InferencePool(settings))

        model_path, labels_path = loader.ensure_downloaded(MODEL_REGISTRY["mobilenet_v2_1.0_224"])

        assert mock_download.call_count == 2
        mock_download.assert_any_call(
            repo_id="Xenova/mobilenet_v2_1.0_224",
            filename="model.onnx",
            subfolder="onnx",
            local_dir=str(tmp_path / "mobilenet_v2_1.0_224"),
        )
        assert model_path == tmp_path / "onnx" / "model.onnx"
        assert labels_path == tmp_path / "config.json"

    @patch("onnxruntime.InferenceSession")
    @patch("wingscan.ml.model_manager.hf_hub_download")
    async def test_load_builds_classifier(
        self, mock_download: MagicMock, mock_session_cls: MagicMock, tmp_path: Path
    ) -> None:
        config_path = _write_config(tmp_path / "config.json", {"0": "monarch", "1": "viceroy"})
        mock_download.side_effect = [str(tmp_path / "model.onnx"), str(config_path)]
        mock_session_cls.return_value = _mock_session([0.0, 1.0])
        settings = _make_settings(models_dir=str(tmp_path))
        loader = OnnxClassifierLoader(settings, InferencePool(settings))

        classifier = await loader.load(ClassifierConfig(version=2, alpha=0.75, top_k=2))

        assert isinstance(classifier, OnnxImageClassifier)
        assert classifier.model_name == "mobilenet_v2_0.75_160"
        mock_session_cls.assert_called_once()
        assert mock_session_cls.call_args.kwargs["providers"] == ["CPUExecutionProvider"]

    async def test_load_unknown_variant(self) -> None:
        settings = _make_settings()
        loader = OnnxClassifierLoader(settings, InferencePool(settings))
        with pytest.raises(KeyError):
            await loader.load(ClassifierConfig(version=9))

    async def test_missing_runtime_is_model_unavailable(self) -> None:
        settings = _make_settings()
        loader = OnnxClassifierLoader(settings, InferencePool(settings))
        with patch.dict(sys.modules, {"onnxruntime": None}), pytest.raises(ModelUnavailable):
            await loader.load(ClassifierConfig())

    async def test_missing_runtime_through_session(self) -> None:
        settings = _make_settings()
        session = ModelSession(OnnxClassifierLoader(settings, InferencePool(settings)), ClassifierConfig())
        with patch.dict(sys.modules, {"onnxruntime": None}), pytest.raises(ModelUnavailable) as excinfo:
            await session.acquire()
        assert excinfo.value.kind is ErrorKind.MODEL_UNAVAILABLE
        assert session.loaded is False

    def test_provider_building_cuda(self) -> None:
        settings = _make_settings(device="cuda")
        loader = OnnxClassifierLoader(settings, InferencePool(settings))
        provider_name, provider_opts = loader._providers[0]  # type: ignore[misc]
        assert provider_name == "CUDAExecutionProvider"
        assert provider_opts["device_id"] == 0
        assert loader._providers[1] == "CPUExecutionProvider"

    def test_provider_building_openvino(self) -> None:
        settings = _make_settings(device="openvino")
        loader = OnnxClassifierLoader(settings, InferencePool(settings))
        provider_name, _provider_opts = loader._providers[0]  # type: ignore[misc]
        assert provider_name == "OpenVINOExecutionProvider"


# ---------------------------------------------------------------------------
# OnnxImageClassifier tests
# ---------------------------------------------------------------------------


class TestOnnxImageClassifier:
    def _classifier(self, logits: list[float], top_k: int = 3) -> tuple[OnnxImageClassifier, MagicMock]:
        session = _mock_session(logits)
        settings = _make_settings()
        labels = {0: "background", 1: "monarch", 2: "viceroy", 3: "admiral"}
        classifier = OnnxImageClassifier(
            name="mobilenet_v2_0.35_96",
            session=session,
            labels=labels,
            input_size=96,
            pool=InferencePool(settings),
            top_k=top_k,
        )
        return classifier, session

    def test_predict_returns_top_k_descending(self) -> None:
        classifier, session = self._classifier([0.0, 3.0, 1.0, 2.0], top_k=3)

        predictions = classifier.predict(Image.new("RGB", (200, 120)))

        assert [p.label for p in predictions] == ["monarch", "admiral", "viceroy"]
        probabilities = [p.probability for p in predictions]
        assert probabilities == sorted(probabilities, reverse=True)
        assert all(0.0 <= p <= 1.0 for p in probabilities)
        feed = session.run.call_args.args[1]
        assert feed["pixel_values"].shape == (1, 3, 96, 96)
        assert feed["pixel_values"].dtype == np.float32

    def test_unknown_index_gets_placeholder_label(self) -> None:
        classifier, _ = self._classifier([0.0, 0.0, 0.0, 0.0, 9.0], top_k=1)
        assert classifier.predict(Image.new("RGB", (96, 96)))[0].label == "class 4"

    async def test_classify_runs_in_pool(self) -> None:
        classifier, session = self._classifier([0.0, 5.0, 0.0, 0.0], top_k=1)

        predictions = await classifier.classify(image_buffer(50, 50))

        assert predictions[0].label == "monarch"
        session.run.assert_called_once()
