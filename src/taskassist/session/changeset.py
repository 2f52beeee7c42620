"""
Change-set builder — raw result archive → reviewable CodeGenerationResult.

The builder is a pure function. Every call wraps paths in fresh file
records with ``rejected=False`` and ``change_applied=False``; it never
merges earlier review decisions, so building twice from the same archive
yields equal results.
"""

from __future__ import annotations

from taskassist.session.models import (
    CodeGenerationResult,
    CodeGenerationStreamResult,
    DeletedFileInfo,
    NewFileZipInfo,
)


def build_code_generation_result(
    raw: CodeGenerationStreamResult,
    remaining_iteration_count: int | None = None,
    total_iteration_count: int | None = None,
) -> CodeGenerationResult:
    """Build a change set, preserving the archive's ordering."""
    return CodeGenerationResult(
        new_files=[
            NewFileZipInfo(zip_file_path=path, file_content=content)
            for path, content in raw.new_file_contents.items()
        ],
        deleted_files=[DeletedFileInfo(zip_file_path=path) for path in raw.deleted_files],
        references=list(raw.references),
        code_generation_remaining_iteration_count=remaining_iteration_count,
        code_generation_total_iteration_count=total_iteration_count,
    )


def summarize_result(result: CodeGenerationResult) -> str:
    """One short, human-readable paragraph describing a change set."""
    if not result.new_files and not result.deleted_files:
        return "Code generation finished without proposing any file changes."

    parts = []
    if result.new_files:
        noun = "file" if len(result.new_files) == 1 else "files"
        parts.append(f"{len(result.new_files)} {noun} to add or update")
    if result.deleted_files:
        noun = "file" if len(result.deleted_files) == 1 else "files"
        parts.append(f"{len(result.deleted_files)} {noun} to delete")

    summary = f"Code generation finished: {' and '.join(parts)}."
    if result.references:
        summary += f" {len(result.references)} code reference(s) attached."
    remaining = result.code_generation_remaining_iteration_count
    if remaining is not None:
        summary += f" Iterations remaining: {remaining}."
    return summary
