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

SESSION_COOKIE_NAME = "__session"
DEFAULT_PROFILE_IMAGE = "/profile.svg"

# Restaurant listing sort keys accepted in the `sort` query parameter.
SORT_BY_RATING = "Rating"
SORT_BY_REVIEW = "Review"

REVIEW_SEPARATOR = "@"
SUMMARY_ERROR_MESSAGE = "Error summarizing reviews."
SUMMARY_ATTRIBUTION = "✨ Summarized with Gemini"

MAX_REVIEW_TEXT_LENGTH = 2000
MIN_RATING = 0
MAX_RATING = 5
