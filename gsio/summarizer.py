"""Maintains a rolling summary through a one-shot backend call."""

import textwrap

SUMMARY_INSTRUCTION = textwrap.dedent("""
    You maintain a concise rolling summary (<= 200 words) of the ongoing context.
    Include only information relevant to assisting the user with on-going tasks.
    Avoid duplicating content; integrate updates succinctly.
    """).strip()


def summary_prompt(previous_summary: str, new_information: str) -> str:
    return (
        f"Previous summary:\n{previous_summary or '(none)'}\n\n"
        f"New information:\n{new_information}\n\n"
        "Update the summary."
    )


async def summarize_context(
    backend, previous_summary: str, new_information: str
) -> str:
    """
    Folds new information into the previous summary.\n
    Falls back to the previous summary if the model returns nothing. Backend
    failures propagate as BackendError.
    """
    summary = await backend.complete(
        [
            {"role": "system", "content": SUMMARY_INSTRUCTION},
            {"role": "user", "content": summary_prompt(previous_summary, new_information)},
        ],
        temperature=0.2,
    )
    return summary or previous_summary or ""
