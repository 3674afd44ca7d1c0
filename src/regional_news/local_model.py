"""
Local Hugging Face causal LM used for classification augmentation and
summarization.
"""

from __future__ import annotations

import logging
import threading

import torch
from transformers import AutoModelForCausalLM, AutoTokenizer

LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL_ID = "microsoft/Phi-3-mini-4k-instruct"


class TransformersTextGenerator:
    """Lightweight wrapper around a local HF model; calls are serialized across threads."""

    def __init__(
        self,
        model_id: str = DEFAULT_MODEL_ID,
        temperature: float = 0.0,
        repetition_penalty: float = 1.05,
        device_map: str = "auto",
    ) -> None:
        dtype = torch.bfloat16 if torch.cuda.is_available() else torch.float32
        LOGGER.info("Loading text generation model %s", model_id)
        self.tokenizer = AutoTokenizer.from_pretrained(model_id)
        self.model = AutoModelForCausalLM.from_pretrained(
            model_id,
            torch_dtype=dtype,
            device_map=device_map,
        )
        self.temperature = temperature
        self.repetition_penalty = repetition_penalty
        self.lock = threading.Lock()

    def build_prompt(self, system_prompt: str, user_prompt: str) -> str:
        if getattr(self.tokenizer, "chat_template", None):
            return self.tokenizer.apply_chat_template(
                [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                tokenize=False,
                add_generation_prompt=True,
            )
        return f"{system_prompt}\n\n{user_prompt}\n"

    def generate(self, system_prompt: str, user_prompt: str, max_new_tokens: int = 256) -> str:
        prompt = self.build_prompt(system_prompt, user_prompt)
        with self.lock:
            inputs = self.tokenizer(prompt, return_tensors="pt").to(self.model.device)
            with torch.no_grad():
                outputs = self.model.generate(
                    **inputs,
                    max_new_tokens=max_new_tokens,
                    do_sample=self.temperature > 0,
                    temperature=self.temperature if self.temperature > 0 else None,
                    repetition_penalty=self.repetition_penalty,
                    eos_token_id=self.tokenizer.eos_token_id,
                    pad_token_id=self.tokenizer.pad_token_id or self.tokenizer.eos_token_id,
                )
        # Only decode the continuation, not the echoed prompt.
        new_tokens = outputs[0][inputs["input_ids"].shape[-1] :]
        return self.tokenizer.decode(new_tokens, skip_special_tokens=True).strip()
