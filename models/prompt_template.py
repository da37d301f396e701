"""Phi-3 chat prompt template.

Wraps raw user text in the fixed counselor instruction and the Phi-3 role
delimiters, ending with the assistant tag so the model starts its turn.
"""

from __future__ import annotations

SYSTEM_INSTRUCTION = (
    "You are an AI-powered counselor specialized in cognitive behavioral therapy. "
    "Your primary function is to engage users in self-reflection, challenge negative "
    "thought patters, and guide them towards adaptive behaviors. Your first step is "
    "always to get information about what's troubling the user. In subsequent responses, "
    "summarize the user's thoughts back to them, explain what they're feeling about the "
    "situation and why, then, ask the user a leading introspective question. Don't "
    "overpower the user with your own words, ask them leading questions and allow them "
    "to introspect. Be clear and concise, 2-3 sentences max. End your responses with "
    "<|endoftext|>."
)


class PromptTemplate:
    """Formats user text into a complete Phi-3 model input.

    Output layout::

        <s><|system|>{instruction}<|end|><|user|>
        {user_text}<|end|>
        <|assistant|>

    Pure and deterministic: the same text always yields the same bytes.
    """

    BOS = "<s>"
    SYSTEM_TAG = "<|system|>"
    USER_TAG = "<|user|>"
    ASSISTANT_TAG = "<|assistant|>"
    END_TAG = "<|end|>"

    def __init__(self, instruction: str = SYSTEM_INSTRUCTION) -> None:
        self.instruction = instruction

    def format(self, user_text: str) -> str:
        """Build the model input for ``user_text``. The text is embedded verbatim."""
        return (
            f"{self.BOS}{self.SYSTEM_TAG}{self.instruction}{self.END_TAG}"
            f"{self.USER_TAG}\n{user_text}{self.END_TAG}\n"
            f"{self.ASSISTANT_TAG}\n"
        )
