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

from typing import List

from shared.constants import REVIEW_SEPARATOR


def make_review_summary_prompt(
    review_texts: List[str], separator: str = REVIEW_SEPARATOR
) -> str:
    """Builds the prompt asking for a one-sentence summary of the reviews."""
    return f"""
    Based on the following restaurant reviews,
    where each review is separated by a '{separator}' character,
    create a one-sentence summary of what people think of the restaurant.

    Here are the reviews: {separator.join(review_texts)}
    """
