"""
Rich renderers shared by the command-line front ends.
"""
from typing import Dict, List

from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree as RichTree

from microfiche.query import QueryResult, Stats
from microfiche.shared import Record
from microfiche.term_analysis import TermReport
from microfiche.validation import ValidationReport

NOTE_PREVIEW_CHARS = 120


def _preview(text: str) -> str:
    text = " ".join(text.split())
    return text[:NOTE_PREVIEW_CHARS] + ("…" if len(text) > NOTE_PREVIEW_CHARS else "")


def results_table(result: QueryResult, title: str) -> Table:
    table = Table(title=title, border_style="cyan", show_lines=False)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Path", style="cyan", overflow="fold")
    table.add_column("Note", style="white", overflow="fold")

    for i, match in enumerate(result.matches, result.offset + 1):
        path = " › ".join(key for key in match.path if key)
        table.add_row(str(i), path, _preview(match.record.note))

    shown_to = result.offset + len(result.matches)
    caption = f"{result.offset + 1 if result.matches else 0}-{shown_to} of {result.total}"
    if result.has_more:
        caption += "  [dim](type 'more' for the next page)[/dim]"
    table.caption = caption
    return table


def records_table(records: List[Record], title: str) -> Table:
    table = Table(title=title, border_style="cyan")
    table.add_column("Category", style="cyan")
    table.add_column("Subcategory", style="magenta")
    table.add_column("Concept", style="green")
    table.add_column("Note", style="white", overflow="fold")
    for record in records:
        concept = record.concept + (f" ({record.key_detail})" if record.key_detail else "")
        table.add_row(record.category, record.subcategory, concept, _preview(record.note))
    return table


def stats_table(stats: Stats, unique_terms: int = None) -> Table:
    table = Table(title="Knowledge Base Overview", border_style="cyan")
    table.add_column("Level", style="cyan", justify="left")
    table.add_column("Count", style="magenta", justify="right")
    table.add_row("Categories", str(stats.category_count))
    table.add_row("Subcategories", str(stats.subcategory_count))
    table.add_row("Concepts", str(stats.concept_count))
    if stats.key_detail_count is not None:
        table.add_row("Key details", str(stats.key_detail_count))
    table.add_row("Total notes", f"[bold]{stats.total_records}[/bold]")
    if unique_terms is not None:
        table.add_row("Unique terms", str(unique_terms))
    return table


def category_table(stats: Stats) -> Table:
    table = Table(title="Notes per Category", border_style="blue")
    table.add_column("Category", style="cyan")
    table.add_column("Notes", style="magenta", justify="right")
    table.add_column("% of Notes", style="green", justify="right")
    for category, count in stats.per_category_counts:
        pct = (count / stats.total_records) * 100 if stats.total_records else 0
        table.add_row(category, str(count), f"{pct:.1f}%")
    return table


def cooccurrence_table(report: TermReport, offset: int = 0, limit: int = 10) -> Table:
    table = Table(title="Term Co-occurrences", border_style="yellow")
    table.add_column("Pair", style="white")
    table.add_column("Count", style="magenta", justify="right")
    table.add_column("Categories", style="dim")
    for (first, second), count, categories in report.cooccurrences[offset:offset + limit]:
        table.add_row(f"{first} ↔ {second}", str(count), ", ".join(categories[:3]))
    return table


def category_terms_panel(report: TermReport) -> Panel:
    lines = []
    for category in sorted(report.category_terms):
        terms = "  ".join(f"{t} ({f})" for t, f in report.category_terms[category])
        lines.append(
            f"[bold cyan]{category}[/bold cyan] "
            f"[dim]{report.category_term_counts[category]} unique terms[/dim]\n  {terms}"
        )
    return Panel("\n".join(lines) or "[dim]No categories yet[/dim]",
                 title="Category-Term Distribution", border_style="yellow")


def structure_tree(structure: Dict[str, Dict[str, List[str]]], label: str = "Microfiche") -> RichTree:
    """Category › subcategory › concept, notes omitted."""
    root = RichTree(f"[bold]{label}[/bold]")
    for category, subcategories in structure.items():
        cat_branch = root.add(f"[bold cyan]{category}[/bold cyan]")
        for subcategory, concepts in subcategories.items():
            sub_branch = cat_branch.add(f"[magenta]{subcategory}[/magenta]")
            for concept in concepts:
                sub_branch.add(concept)
    return root


def validation_panel(report: ValidationReport) -> Panel:
    if report.passed:
        return Panel(f"[green]✔ {report.rows_checked} rows checked, no problems found[/green]",
                     title="Validation", border_style="green")
    body = "\n".join(f"[red]✗[/red] {error.message}" for error in report.errors)
    summary = ", ".join(f"{kind}: {n}" for kind, n in report.by_kind().items())
    return Panel(
        f"{body}\n\n[bold]{report.total_error_count} problem(s)[/bold] in "
        f"{report.rows_checked} rows [dim]({summary})[/dim]",
        title="Validation", border_style="red",
    )
