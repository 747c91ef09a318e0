"""Model manager: resolve, download, and load MobileNet ONNX classifiers.

Handles the variant registry, downloading models and their label maps from
HuggingFace, and building ONNX Runtime sessions with the configured
execution providers.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from huggingface_hub import hf_hub_download

from wingscan.errors import ModelUnavailable
from wingscan.ml.classifier import ClassifierConfig, OnnxImageClassifier

if TYPE_CHECKING:
    from types import ModuleType

    from onnxruntime import SessionOptions

    from wingscan.config import Settings
    from wingscan.ml.inference import InferencePool

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Model registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for a single ONNX classifier."""

    name: str
    version: int
    alpha: float
    input_size: int
    repo_id: str
    filename: str
    subfolder: str | None
    license: str


MODEL_REGISTRY: dict[str, ModelSpec] = {
    "mobilenet_v2_1.0_224": ModelSpec(
        name="mobilenet_v2_1.0_224",
        version=2,
        alpha=1.0,
        input_size=224,
        repo_id="Xenova/mobilenet_v2_1.0_224",
        filename="model.onnx",
        subfolder="onnx",
        license="Apache-2.0",
    ),
    "mobilenet_v2_0.75_160": ModelSpec(
        name="mobilenet_v2_0.75_160",
        version=2,
        alpha=0.75,
        input_size=160,
        repo_id="Xenova/mobilenet_v2_0.75_160",
        filename="model.onnx",
        subfolder="onnx",
        license="Apache-2.0",
    ),
    "mobilenet_v2_0.35_96": ModelSpec(
        name="mobilenet_v2_0.35_96",
        version=2,
        alpha=0.35,
        input_size=96,
        repo_id="Xenova/mobilenet_v2_0.35_96",
        filename="model.onnx",
        subfolder="onnx",
        license="Apache-2.0",
    ),
    "mobilenet_v1_1.0_224": ModelSpec(
        name="mobilenet_v1_1.0_224",
        version=1,
        alpha=1.0,
        input_size=224,
        repo_id="Xenova/mobilenet_v1_1.0_224",
        filename="model.onnx",
        subfolder="onnx",
        license="Apache-2.0",
    ),
}

LABELS_FILENAME = "config.json"


def resolve_spec(version: int, alpha: float) -> ModelSpec:
    """Return the registry entry matching a version/alpha selector."""
    for spec in MODEL_REGISTRY.values():
        if spec.version == version and spec.alpha == alpha:
            return spec
    raise KeyError(f"Unknown model variant: version={version} alpha={alpha}")


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


class OnnxClassifierLoader:
    """Downloads a MobileNet variant and wraps it in an OnnxImageClassifier."""

    def __init__(self, settings: Settings, pool: InferencePool) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)
        self._pool = pool
        self._providers = self._build_providers()

    async def load(self, config: ClassifierConfig) -> OnnxImageClassifier:
        """Download (if needed) and load the classifier selected by ``config``."""
        runtime = _import_runtime()
        spec = resolve_spec(config.version, config.alpha)
        return await asyncio.to_thread(self._load_blocking, runtime, spec, config)

    def ensure_downloaded(self, spec: ModelSpec) -> tuple[Path, Path]:
        """Download the model and its label map if not already present locally."""
        self._models_dir.mkdir(parents=True, exist_ok=True)
        model_path = Path(
            hf_hub_download(
                repo_id=spec.repo_id,
                filename=spec.filename,
                subfolder=spec.subfolder,
                local_dir=str(self._models_dir / spec.name),
            )
        )
        labels_path = Path(
            hf_hub_download(
                repo_id=spec.repo_id,
                filename=LABELS_FILENAME,
                local_dir=str(self._models_dir / spec.name),
            )
        )
        logger.info("Model files for %s available at %s", spec.name, model_path.parent)
        return model_path, labels_path

    # -- Internal -----------------------------------------------------------

    def _load_blocking(self, runtime: ModuleType, spec: ModelSpec, config: ClassifierConfig) -> OnnxImageClassifier:
        model_path, labels_path = self.ensure_downloaded(spec)
        labels = load_labels(labels_path)
        session = runtime.InferenceSession(
            str(model_path),
            sess_options=self._build_session_options(runtime),
            providers=self._providers,
        )
        logger.info("Loaded session for %s (%d labels)", spec.name, len(labels))
        return OnnxImageClassifier(
            name=spec.name,
            session=session,
            labels=labels,
            input_size=spec.input_size,
            pool=self._pool,
            top_k=config.top_k,
        )

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [("CUDAExecutionProvider", {"device_id": 0}), "CPUExecutionProvider"]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self, runtime: ModuleType) -> SessionOptions:
        opts = runtime.SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = runtime.ExecutionMode.ORT_SEQUENTIAL
        return opts


def _import_runtime() -> ModuleType:
    """Import ONNX Runtime on first load so a missing install surfaces as ModelUnavailable."""
    try:
        import onnxruntime
    except ImportError as exc:
        logger.error("ONNX Runtime is not installed: %s", exc)
        raise ModelUnavailable() from exc
    return onnxruntime


def load_labels(path: Path) -> dict[int, str]:
    """Read the ``id2label`` map from a HuggingFace model config."""
    config = json.loads(path.read_text(encoding="utf-8"))
    try:
        id2label = config["id2label"]
    except KeyError:
        raise ValueError(f"No id2label mapping in {path}") from None
    return {int(idx): str(label) for idx, label in id2label.items()}
