"""Prompt templates for the generation stages."""

from __future__ import annotations

from typing import Sequence

SUMMARY_SYSTEM = "You are a concise assistant that connects a new note to the writer's past notes."
SEARCH_SYSTEM = "You write short, specific web search queries."
SELECT_SYSTEM = "You pick the web pages most worth reading in full."
PAGE_SYSTEM = "You summarize web pages in two or three plain sentences."
SYNTHESIS_SYSTEM = "You write one short, high-signal sentence."


def _goals_block(goals: str) -> str:
    return f"\nThe writer's current goals:\n{goals}\n" if goals.strip() else ""


def summary_prompt(paragraph: str, snippets: Sequence[tuple[str, str]], goals: str) -> str:
    notes = "\n".join(f"- [{title}] {content}" for title, content in snippets) or "(no related notes)"
    return (
        "In at most three sentences, explain how this new paragraph relates to the "
        "related notes below and what the writer might do next.\n"
        f"{_goals_block(goals)}\n"
        f'New paragraph:\n"""{paragraph}"""\n\n'
        f"Related notes:\n{notes}"
    )


def search_queries_prompt(paragraph: str, goals: str, limit: int) -> str:
    return (
        f"Write up to {limit} web search queries, one per line and nothing else, "
        "that would find useful background for this paragraph.\n"
        f"{_goals_block(goals)}\n"
        f'Paragraph:\n"""{paragraph}"""'
    )


def select_pages_prompt(paragraph: str, candidates: Sequence[tuple[str, str, str]], count: int) -> str:
    listing = "\n".join(
        f"{number}. {title} - {url}\n   {description}"
        for number, (title, url, description) in enumerate(candidates, start=1)
    )
    return (
        f"Choose the {count} results most valuable to read in depth for this paragraph. "
        "Answer with their numbers separated by commas.\n\n"
        f'Paragraph:\n"""{paragraph}"""\n\nResults:\n{listing}'
    )


def page_summary_prompt(paragraph: str, title: str, content: str) -> str:
    return (
        "Summarize what this page offers for the paragraph below.\n\n"
        f'Paragraph:\n"""{paragraph}"""\n\n'
        f"Page: {title}\n{content}"
    )


def synthesis_prompt(summary: str, page_summaries: Sequence[str], goals: str) -> str:
    pages = "\n".join(f"- {text}" for text in page_summaries) or "(none)"
    return (
        "Combine the note summary and the web findings into a single sentence "
        "the writer can act on.\n"
        f"{_goals_block(goals)}\n"
        f"Note summary:\n{summary or '(none)'}\n\nWeb findings:\n{pages}"
    )
