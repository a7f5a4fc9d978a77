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

import unittest
from unittest.mock import MagicMock, patch

from models import gemini, prompts


class GeminiTest(unittest.TestCase):

    @patch("models.gemini.genai.Client")
    def test_call_predict_returns_stripped_text(self, mock_client_cls):
        """Tests that the response text is returned without surrounding whitespace."""
        client = mock_client_cls.return_value
        client.models.generate_content.return_value = MagicMock(text="  Tasty.\n")

        result = gemini.call_predict("prompt", model="gemini-test", api_key="key")

        self.assertEqual(result, "Tasty.")
        mock_client_cls.assert_called_once_with(api_key="key")
        kwargs = client.models.generate_content.call_args.kwargs
        self.assertEqual(kwargs["model"], "gemini-test")
        self.assertEqual(kwargs["contents"], "prompt")

    @patch("models.gemini.genai.Client")
    def test_call_predict_raises_on_empty_response(self, mock_client_cls):
        mock_client_cls.return_value.models.generate_content.return_value = MagicMock(
            text=None
        )
        with self.assertRaises(gemini.GeminiInvalidResponseException):
            gemini.call_predict("prompt", api_key="key")

    def test_review_summary_prompt(self):
        prompt = prompts.make_review_summary_prompt(["a", "b"], separator="|")
        self.assertIn("separated by a '|' character", prompt)
        self.assertIn("Here are the reviews: a|b", prompt)


if __name__ == "__main__":
    unittest.main()
