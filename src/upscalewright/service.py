"""Registry of named upscale pipelines.

Keeps one pipeline per model set and tracks which models are resident, so
front ends can offer load/unload per model without double-loading.
"""
from typing import Callable, Dict, Iterable, List, Optional

from .config import UpscaleModelSet
from .exceptions import ConfigurationError
from .inference.base import InferenceEngine
from .pipeline import UpscalePipeline
from .utils.logging import get_logger

logger = get_logger("service")

EngineFactory = Callable[[UpscaleModelSet], Optional[InferenceEngine]]


class UpscaleService:
    """Manages pipelines for a collection of model sets.

    Args:
        model_sets: Initial model sets
        engine_factory: Optional callable returning the engine for a model
            set; None (or a factory returning None) uses ONNX Runtime
    """

    def __init__(
        self,
        model_sets: Iterable[UpscaleModelSet] = (),
        engine_factory: Optional[EngineFactory] = None,
    ) -> None:
        self._engine_factory = engine_factory
        self._model_sets: Dict[str, UpscaleModelSet] = {}
        self._pipelines: Dict[str, UpscalePipeline] = {}
        for model_set in model_sets:
            self.add_model_set(model_set)

    @property
    def model_sets(self) -> List[UpscaleModelSet]:
        return list(self._model_sets.values())

    def add_model_set(self, model_set: UpscaleModelSet) -> None:
        if model_set.name in self._model_sets:
            raise ConfigurationError(
                f"Model set '{model_set.name}' is already registered",
                config_key="name",
                config_value=model_set.name,
            )
        self._model_sets[model_set.name] = model_set

    async def remove_model_set(self, name: str) -> None:
        """Unregister a model set, unloading it first."""
        await self.unload_model(name)
        self._model_sets.pop(name, None)
        self._pipelines.pop(name, None)

    def _get_model_set(self, name: str) -> UpscaleModelSet:
        try:
            return self._model_sets[name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown model set '{name}'",
                config_key="name",
                config_value=name,
                valid_values=sorted(self._model_sets),
            ) from None

    def get_pipeline(self, name: str) -> UpscalePipeline:
        """Return the (possibly unloaded) pipeline for a model set."""
        pipeline = self._pipelines.get(name)
        if pipeline is None:
            model_set = self._get_model_set(name)
            engine = self._engine_factory(model_set) if self._engine_factory else None
            pipeline = UpscalePipeline.create_pipeline(model_set, engine=engine)
            self._pipelines[name] = pipeline
        return pipeline

    def is_model_loaded(self, name: str) -> bool:
        pipeline = self._pipelines.get(name)
        return pipeline is not None and pipeline.is_loaded

    async def load_model(self, name: str) -> bool:
        """Load a model set's pipeline; returns True once it is resident."""
        model_set = self._get_model_set(name)
        if not model_set.is_enabled:
            raise ConfigurationError(
                f"Model set '{name}' is disabled",
                config_key="is_enabled",
                config_value=False,
            )
        if self.is_model_loaded(name):
            return True
        await self.get_pipeline(name).load()
        logger.info("Model set loaded", model_set=name)
        return True

    async def unload_model(self, name: str) -> None:
        if not self.is_model_loaded(name):
            return
        await self._pipelines[name].unload()
        logger.info("Model set unloaded", model_set=name)

    async def unload_all(self) -> None:
        for name in list(self._pipelines):
            await self.unload_model(name)
