# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

import time
import logging
from google import genai
from google.genai import types

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash"
QUERY_RESPONSE_MAX_OUTPUT_TOKENS = 1000


class GeminiInvalidResponseException(Exception):
    pass


def call_predict(
    query: str,
    model: str = DEFAULT_MODEL,
    api_key: str | None = None,
    temperature: float = 0.7,
) -> str:
    """
    Calls Gemini with a text prompt and returns the generated text.

    Args:
        query (str): The prompt.
        model (str): The model to call with.
        api_key (str | None): The Gemini API key.
        temperature (float): Sampling temperature.

    Returns:
        str: The response text, stripped of surrounding whitespace.

    Raises:
        GeminiInvalidResponseException: The model returned no text.
    """
    client = genai.Client(api_key=api_key)

    start_time = time.time()
    truncated_query = (query[:200] + "...") if len(query) > 200 else query
    logger.info(f"Calling Gemini ({model}), prompt: '{truncated_query}'")
    response = client.models.generate_content(
        model=model,
        contents=query,
        config=types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=QUERY_RESPONSE_MAX_OUTPUT_TOKENS,
        ),
    )
    logger.info(f"Gemini call took: {time.time() - start_time:.2f}s")
    if not response.text:
        raise GeminiInvalidResponseException()
    return response.text.strip()
