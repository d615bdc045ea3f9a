"""System prompt that asks the model to answer with `<file>` records."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

_OUTPUT_FORMAT = """\
Your output format must be the following and nothing more:

<file path="{root}/the/path/to/the/file">
  the new file content
</file>
<file path="{root}/the/path/to/the/other/file">
  the new file content
</file>

All files must be in the {root} folder. You may add new files.
Always write the complete file content, never a diff or a fragment.
"""


def build_system_prompt(
    root_prefix: str,
    *,
    files: Mapping[str, str] | None = None,
    read_only: Iterable[str] = (),
) -> str:
    """Render the system prompt for one extraction session.

    `files` maps current project paths to their content; `read_only` lists paths
    the model may reference but must not rewrite. Read-only entries use the
    self-closing `<file ... />` form, which the extractor never treats as a record.
    """

    root = root_prefix.strip().strip("/")
    sections = [
        "You are an expert programmer working on an existing project.",
        "The user gives you a request and you change the files in the project to achieve it.",
    ]

    read_only_paths = sorted(read_only)
    if read_only_paths:
        entries = "\n".join(f'<file path="{path}" readOnly="true" />' for path in read_only_paths)
        sections.append(f"These files can be used but not changed:\n\n{entries}")

    if files:
        entries = "\n\n".join(
            f'<file path="{path}">\n{content}\n</file>' for path, content in sorted(files.items())
        )
        sections.append(f"The current files in the project are:\n\n{entries}")

    sections.append(_OUTPUT_FORMAT.format(root=root))
    return "\n\n".join(sections)
