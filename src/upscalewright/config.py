"""Model configuration for Upscalewright pipelines.

A model set names one upscale model and the device it runs on. Model sets
can be declared in a YAML file:

    models:
      - name: RealESRGAN-x4
        device_id: 0
        execution_provider: cuda
        upscale_model_config:
          onnx_model_path: models/realesrgan_x4.onnx
          scale_factor: 4
          sample_size: 512
"""
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from .exceptions import ConfigurationError


class ExecutionProvider(Enum):
    """Device backends understood by ONNX Runtime."""
    CPU = "cpu"
    CUDA = "cuda"
    DIRECTML = "directml"
    TENSORRT = "tensorrt"
    ROCM = "rocm"
    COREML = "coreml"

    @classmethod
    def parse(cls, value: Union[str, "ExecutionProvider"]) -> "ExecutionProvider":
        """Parse a provider from its enum value or name (case-insensitive)."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for provider in cls:
            if text in (provider.value, provider.name.lower()):
                return provider
        raise ConfigurationError(
            f"Unknown execution provider '{value}'",
            config_key="execution_provider",
            config_value=value,
            valid_values=[p.value for p in cls],
        )

    def onnx_providers(self, device_id: int = 0) -> List[Union[str, Tuple[str, Dict[str, Any]]]]:
        """ONNX Runtime provider list, always ending with the CPU fallback."""
        if self is ExecutionProvider.CPU:
            return ["CPUExecutionProvider"]
        names = {
            ExecutionProvider.CUDA: "CUDAExecutionProvider",
            ExecutionProvider.DIRECTML: "DmlExecutionProvider",
            ExecutionProvider.TENSORRT: "TensorrtExecutionProvider",
            ExecutionProvider.ROCM: "ROCMExecutionProvider",
        }
        if self is ExecutionProvider.COREML:
            return ["CoreMLExecutionProvider", "CPUExecutionProvider"]
        return [(names[self], {"device_id": device_id}), "CPUExecutionProvider"]


@dataclass
class UpscaleModelConfig:
    """Configuration of one upscale network.

    Attributes:
        onnx_model_path: Path to the ONNX model file
        scale_factor: Integer factor the model applies to width and height
        sample_size: Largest tile side the model accepts
        channels: Number of image channels the model consumes and produces
        device_id: Device index (None = inherit from the model set)
        execution_provider: Backend (None = inherit from the model set)
    """

    onnx_model_path: Path
    scale_factor: int = 4
    sample_size: int = 512
    channels: int = 3
    device_id: Optional[int] = None
    execution_provider: Optional[ExecutionProvider] = None

    def __post_init__(self) -> None:
        if not isinstance(self.onnx_model_path, Path):
            self.onnx_model_path = Path(self.onnx_model_path)

        if self.execution_provider is not None:
            self.execution_provider = ExecutionProvider.parse(self.execution_provider)

        for key in ("scale_factor", "sample_size"):
            value = getattr(self, key)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigurationError(
                    f"{key} must be a positive integer",
                    config_key=key,
                    config_value=value,
                )

        if self.channels not in (1, 3, 4):
            raise ConfigurationError(
                "channels must be 1, 3 or 4",
                config_key="channels",
                config_value=self.channels,
                valid_values=[1, 3, 4],
            )

        if self.device_id is not None and self.device_id < 0:
            raise ConfigurationError(
                "device_id must be non-negative",
                config_key="device_id",
                config_value=self.device_id,
            )

    @property
    def name(self) -> str:
        return self.onnx_model_path.stem

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "onnx_model_path": str(self.onnx_model_path),
            "scale_factor": self.scale_factor,
            "sample_size": self.sample_size,
            "channels": self.channels,
        }
        if self.device_id is not None:
            data["device_id"] = self.device_id
        if self.execution_provider is not None:
            data["execution_provider"] = self.execution_provider.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UpscaleModelConfig":
        if "onnx_model_path" not in data:
            raise ConfigurationError(
                "upscale_model_config requires onnx_model_path",
                config_key="onnx_model_path",
            )
        valid_keys = {
            "onnx_model_path", "scale_factor", "sample_size", "channels",
            "device_id", "execution_provider",
        }
        return cls(**{k: v for k, v in data.items() if k in valid_keys})


@dataclass
class UpscaleModelSet:
    """A named, device-bound upscale model.

    Attributes:
        name: Display name, also the registry key
        upscale_model_config: Network configuration
        is_enabled: Disabled sets are listed but never loaded
        device_id: Default device index for the model
        execution_provider: Default backend for the model
    """

    name: str
    upscale_model_config: UpscaleModelConfig
    is_enabled: bool = True
    device_id: int = 0
    execution_provider: ExecutionProvider = ExecutionProvider.DIRECTML

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("Model set name must not be empty", config_key="name")
        self.execution_provider = ExecutionProvider.parse(self.execution_provider)
        if self.device_id < 0:
            raise ConfigurationError(
                "device_id must be non-negative",
                config_key="device_id",
                config_value=self.device_id,
            )

    def apply_defaults(self) -> UpscaleModelConfig:
        """Return the model config with device settings inherited from this set."""
        config = self.upscale_model_config
        return replace(
            config,
            device_id=self.device_id if config.device_id is None else config.device_id,
            execution_provider=(
                self.execution_provider
                if config.execution_provider is None
                else config.execution_provider
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "is_enabled": self.is_enabled,
            "device_id": self.device_id,
            "execution_provider": self.execution_provider.value,
            "upscale_model_config": self.upscale_model_config.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UpscaleModelSet":
        """Create a model set from a dictionary (e.g. one YAML list entry)."""
        if not isinstance(data, dict):
            raise ConfigurationError(
                "Model set entry must be a mapping",
                config_key="models",
                config_value=data,
            )
        model_data = data.get("upscale_model_config")
        if not isinstance(model_data, dict):
            raise ConfigurationError(
                f"Model set '{data.get('name')}' has no upscale_model_config",
                config_key="upscale_model_config",
            )
        return cls(
            name=data.get("name", ""),
            upscale_model_config=UpscaleModelConfig.from_dict(model_data),
            is_enabled=data.get("is_enabled", True),
            device_id=data.get("device_id", 0),
            execution_provider=data.get("execution_provider", ExecutionProvider.DIRECTML),
        )


def load_model_sets(path: Union[str, Path]) -> List[UpscaleModelSet]:
    """Load model sets from a YAML file with a top-level ``models`` list.

    Relative model paths are resolved against the file's directory.
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read model configuration {path}", cause=e)

    entries = data.get("models") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise ConfigurationError(
            f"{path} must contain a 'models' list",
            config_key="models",
        )

    model_sets = []
    for entry in entries:
        model_set = UpscaleModelSet.from_dict(entry)
        model_path = model_set.upscale_model_config.onnx_model_path
        if not model_path.is_absolute():
            model_set.upscale_model_config.onnx_model_path = path.parent / model_path
        model_sets.append(model_set)
    return model_sets


def save_model_sets(model_sets: List[UpscaleModelSet], path: Union[str, Path]) -> None:
    """Write model sets to a YAML file readable by :func:`load_model_sets`."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(
            {"models": [m.to_dict() for m in model_sets]},
            f,
            default_flow_style=False,
            sort_keys=False,
        )
