"""
Integration with Replicate for storybook page illustrations.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable as IterableABC
from contextlib import ExitStack
from pathlib import Path
from typing import Any, BinaryIO, Callable, Sequence

import replicate

from storygem.common.backoff import DEFAULT_DELAYS, retry_with_backoff
from storygem.common.errors import IllustrationError

from .prompting import StorybookPrompt, build_illustration_prompt

logger = logging.getLogger(__name__)


def _build_flux_schnell_input(
    *,
    prompt: StorybookPrompt,
    image_input: str | BinaryIO | None,
) -> dict[str, Any]:
    return {
        "prompt": prompt.positive,
        "aspect_ratio": "1:1",
        "num_outputs": 1,
        "output_format": "png",
        "go_fast": True,
    }


def _build_flux_kontext_input(
    *,
    prompt: StorybookPrompt,
    image_input: str | BinaryIO | None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "prompt": prompt.positive,
        "output_format": "png",
        "safety_tolerance": 2,
        "prompt_upsampling": True,
        "aspect_ratio": "1:1",
    }
    if image_input is not None:
        payload["input_image"] = image_input
    return payload


def _build_instant_id_input(
    *,
    prompt: StorybookPrompt,
    image_input: str | BinaryIO | None,
) -> dict[str, Any]:
    if image_input is None:
        raise IllustrationError("zsxkib/instant-id requires a reference image.")
    return {
        "prompt": prompt.positive,
        "negative_prompt": prompt.negative,
        "image": image_input,
        "output_format": "png",
        "sdxl_weights": "protovision-xl-high-fidel",
        "guidance_scale": 5,
    }


_MODEL_INPUT_BUILDERS: dict[str, Callable[..., dict[str, Any]]] = {
    "black-forest-labs/flux-schnell": _build_flux_schnell_input,
    "black-forest-labs/flux-kontext-pro": _build_flux_kontext_input,
    "zsxkib/instant-id": _build_instant_id_input,
}

# Models that render the child from the uploaded reference photo.
_REFERENCE_MODELS = frozenset({"black-forest-labs/flux-kontext-pro", "zsxkib/instant-id"})


def _base_identifier(model_identifier: str) -> str:
    return model_identifier.strip().lower().split(":", maxsplit=1)[0]


def _build_replicate_input_payload(
    *,
    model_identifier: str,
    prompt: StorybookPrompt,
    image_input: str | BinaryIO | None,
) -> dict[str, Any]:
    builder = _MODEL_INPUT_BUILDERS.get(_base_identifier(model_identifier))
    if builder is None:
        supported_models = ", ".join(sorted(_MODEL_INPUT_BUILDERS))
        raise ValueError(
            "Model identifier "
            f"'{model_identifier}' is not configured with a default input payload. "
            f"Supported models: {supported_models}."
        )

    return builder(prompt=prompt, image_input=image_input)


class ReplicateImageGenerator:
    """
    Async wrapper around the Replicate client producing one image URL per prompt.

    Parameters
    ----------
    api_token:
        Replicate API token.
    model_identifier:
        Model string in the ``owner/model`` or ``owner/model:version`` format.
    client:
        Optional pre-configured :class:`replicate.Client`. Mainly useful for testing.
    retry_delays:
        Back-off schedule applied only when Replicate throttles.
    """

    def __init__(
        self,
        *,
        api_token: str | None = None,
        model_identifier: str,
        client: replicate.Client | None = None,
        retry_delays: Sequence[float] = DEFAULT_DELAYS,
    ) -> None:
        if not api_token and client is None:
            raise ValueError(
                "Replicate API token is required. Set REPLICATE_API_TOKEN or pass api_token."
            )
        if _base_identifier(model_identifier) not in _MODEL_INPUT_BUILDERS:
            supported_models = ", ".join(sorted(_MODEL_INPUT_BUILDERS))
            raise ValueError(
                f"Unsupported Replicate model '{model_identifier}'. Supported models: {supported_models}."
            )

        self._model_identifier = model_identifier
        self._client = client or replicate.Client(api_token=api_token)
        self._retry_delays = tuple(retry_delays)

    @property
    def model_identifier(self) -> str:
        """Return the model identifier currently used."""
        return self._model_identifier

    @property
    def uses_reference_image(self) -> bool:
        return _base_identifier(self._model_identifier) in _REFERENCE_MODELS

    async def generate_illustration(
        self,
        prompt: str,
        *,
        reference_image: str | Path | BinaryIO | None = None,
    ) -> str:
        """
        Render one page illustration and return its URL.

        Parameters
        ----------
        prompt:
            The page's illustration prompt as written by the narrative model.
        reference_image:
            The child's reference photo (URL, path, or file object); only sent to
            models that condition on it.
        """
        storybook_prompt = build_illustration_prompt(prompt)

        with ExitStack() as stack:
            image_input = None
            if reference_image is not None and self.uses_reference_image:
                image_input = _prepare_image_input(reference_image, stack=stack)

            replicate_input = _build_replicate_input_payload(
                model_identifier=self._model_identifier,
                prompt=storybook_prompt,
                image_input=image_input,
            )

            raw_output = await retry_with_backoff(
                self._client.async_run,
                self._model_identifier,
                input=replicate_input,
                delays=self._retry_delays,
            )

        urls = normalize_image_outputs(raw_output)
        if not urls:
            raise IllustrationError("Replicate returned no image for the illustration prompt.")
        logger.debug("Illustration ready from %s: %s", self._model_identifier, urls[0])
        return urls[0]


def _prepare_image_input(
    input_image: str | Path | BinaryIO,
    *,
    stack: ExitStack,
) -> str | BinaryIO:
    """
    Normalize the image input so Replicate can consume it, keeping resources open via ExitStack.
    """
    if hasattr(input_image, "read"):
        # Assume file-like object, rely on caller to manage its lifecycle.
        return input_image  # type: ignore[return-value]

    if isinstance(input_image, Path):
        input_path = input_image.expanduser()
    else:
        input_candidate = str(input_image)
        if input_candidate.lower().startswith(("http://", "https://", "data:")):
            return input_candidate
        input_path = Path(input_candidate).expanduser()

    if not input_path.exists():
        raise FileNotFoundError(f"Input image not found at '{input_path}'.")

    return stack.enter_context(input_path.open("rb"))


def normalize_image_outputs(raw: Any) -> list[str]:
    """
    Normalize the image outputs returned by Replicate into a list of URL strings.
    """

    if raw is None:
        return []

    if isinstance(raw, str):
        return [raw] if raw.strip() else []

    if isinstance(raw, bytes):
        return [raw.decode("utf-8", errors="ignore")]

    # replicate.helpers.FileOutput exposes the delivery URL.
    url = getattr(raw, "url", None)
    if isinstance(url, str) and url:
        return [url]

    if isinstance(raw, IterableABC):
        collected = list(raw)
        if not collected:
            return []

        if all(isinstance(item, str) and len(item) == 1 for item in collected):
            return ["".join(collected)]

        normalized: list[str] = []
        for item in collected:
            normalized.extend(normalize_image_outputs(item))
        return normalized

    return [str(raw)]
