from __future__ import annotations

from typing import Sequence


def score_prompt(*, original_prompt: str, evaluated_text: str) -> str:
    return f"""You are evaluating an AI model's response to a prompt.

Original Prompt: "{original_prompt}"

Response to Evaluate:
"{evaluated_text}"

Please rate this response on a scale of 1-10 based on:
- Quality: Is it well-written and clear?
- Clarity: Is it easy to understand?
- Relevance: Does it address the prompt appropriately?
- Accuracy: Is the information correct?

Provide only a numeric score between 1 and 10. Reply with just the number, nothing else."""


def arbiter_prompt(*, original_prompt: str, labeled_candidates: Sequence[tuple[str, str]]) -> str:
    labels = [label for label, _ in labeled_candidates]
    responses_text = "\n\n".join(
        [f'Response {label}:\n"{text}"' for label, text in labeled_candidates]
    )
    example_order = " ".join(labels)
    example_reversed = " ".join(reversed(labels))

    return f"""You are an expert AI evaluator. You need to rank these {len(labels)} AI model responses to the following prompt.

Original Prompt: "{original_prompt}"

Here are the {len(labels)} responses to rank:

{responses_text}

Evaluate each response based on:
1. Quality - Overall excellence and completeness
2. Clarity - How clear and understandable it is
3. Relevance - How well it addresses the prompt
4. Accuracy - Correctness of information
5. Usefulness - Practical value to the user

Rank them from best to worst. Reply ONLY with the letters in order (e.g., "{example_order}" or "{example_reversed}"). No explanations, just the letters separated by spaces."""
