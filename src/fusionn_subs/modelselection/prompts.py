"""Prompt templates for translation model evaluation."""

from __future__ import annotations

from collections.abc import Sequence

from fusionn_subs.modelselection.catalog import CandidateModel

EVALUATION_SYSTEM_INSTRUCTION = (
    "You are an AI model evaluation expert specializing in language translation systems. "
    "Your task is to select the BEST model for English to Chinese subtitle translation. "
    "Use deep reasoning and research capabilities to make an informed decision."
)

_DESCRIPTION_MAX_CHARS = 400

MODEL_EVALUATION_PROMPT = """\
Select the single best model for translating English movie and TV subtitles
into natural, fluent Simplified Chinese.

All candidates below are free to use. Judge them on:

1. Translation quality: accuracy, fluency and natural colloquial Chinese,
   including idioms, slang and tone of spoken dialogue.
2. Instruction following: the model must keep subtitle numbering, line
   breaks and batch formatting exactly as requested, without commentary.
3. Reliability: prefer stable, widely used general-purpose chat models with
   enough context for batches of subtitle lines. Avoid experimental,
   deprecated or very small models.

Do NOT pick models specialized for code, math, vision-only or embedding tasks.

Candidates ({count}):

{candidates}

Respond with ONLY the exact model id from the list above, for example
"vendor/model-name:free". No explanation, no punctuation, no other text.
"""


def build_evaluation_prompt(models: Sequence[CandidateModel]) -> str:
    """Render the evaluation prompt listing every candidate with its metadata."""

    return MODEL_EVALUATION_PROMPT.format(
        count=len(models),
        candidates="\n\n".join(_format_candidate(model) for model in models),
    )


def _format_candidate(model: CandidateModel) -> str:
    lines = [f"- id: {model.id}"]
    if model.name:
        lines.append(f"  name: {model.name}")
    if model.context_length:
        lines.append(f"  context_length: {model.context_length}")
    description = " ".join(model.description.split())
    if description:
        if len(description) > _DESCRIPTION_MAX_CHARS:
            description = description[:_DESCRIPTION_MAX_CHARS].rstrip() + "..."
        lines.append(f"  description: {description}")
    return "\n".join(lines)
