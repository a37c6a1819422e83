# Standard Library Imports
import argparse   # Command-line options
import shlex      # Splits "all:" terms while honouring quotes
from pathlib import Path
from typing import Callable, List, Optional

# UI Libraries
from rich.console import Console          # Pretty printing to terminal
from rich.panel import Panel              # Boxed text in terminal

from microfiche import display
from microfiche.csv_io import read_rows
from microfiche.errors import MalformedRecordError, MicroficheError
from microfiche.knowledge_store import KnowledgeStore
from microfiche.query import QueryResult
from microfiche.shared import DISPLAY_LIMIT, KB_FILE, Record

HELP_TEXT = """[bold]Searching[/bold]
  <text>                     search one term (category, then subcategory, then any field)
  all: t1 t2 ...             notes containing every term
  cat:<text>  sub:<text>     filter by category / subcategory name
  more                       next page of the last result

[bold]Browsing[/bold]
  stats   terms   tree   unique <field>   random [n]   validate

[bold]Editing[/bold]  (fields separated by |, key detail only in 5-field files)
  add cat|sub|concept|[detail|]note
  del cat|sub|concept|[detail|]note
  delsub cat[|sub[|concept]]
  save [path]   open <path>   quit"""


##  ##                                                           ##  ##  --  --  Session  --  --  ##  ##
class Session:
    """
    One interactive session over a KnowledgeStore.
    Every command is translated into a KnowledgeStore call; results are
    rendered with rich.
    """

    def __init__(self, kb: KnowledgeStore, console: Optional[Console] = None):
        self.kb = kb
        self.console = console or Console()
        self._last_query: Optional[Callable[[int], QueryResult]] = None
        self._last_title = ""
        self._offset = 0

    def execute(self, line: str) -> bool:
        """Run one command line. Returns False when the session should end."""
        line = line.strip()
        if not line:
            return True
        command, _, rest = line.partition(" ")
        command = command.lower()
        try:
            if command in ("quit", "exit", "q"):
                return False
            elif command == "help":
                self.console.print(Panel(HELP_TEXT, title="Commands", border_style="cyan"))
            elif line.lower().startswith("all:"):
                terms = shlex.split(line[4:])
                self._run_query(lambda o: self.kb.search_all(terms, offset=o), f"All of: {', '.join(terms)}")
            elif line.lower().startswith("cat:"):
                text = line[4:].strip()
                self._run_query(lambda o: self.kb.filter_by_category(text, offset=o), f"Category ~ {text}")
            elif line.lower().startswith("sub:"):
                text = line[4:].strip()
                self._run_query(lambda o: self.kb.filter_by_subcategory(text, offset=o), f"Subcategory ~ {text}")
            elif command == "more":
                self._more()
            elif command == "stats":
                self._stats()
            elif command == "terms":
                self._terms()
            elif command == "tree":
                self.console.print(display.structure_tree(self.kb.list_structure(), self._label()))
            elif command == "unique":
                values = self.kb.unique_values(rest.strip())
                self.console.print(f"[bold]{len(values)}[/bold] distinct value(s) of {rest.strip()}:")
                for value in values:
                    self.console.print(f"  {value}")
            elif command == "random":
                n = int(rest) if rest.strip() else 1
                self.console.print(display.records_table(self.kb.random_sample(n), "Random notes"))
            elif command == "validate":
                self._validate()
            elif command == "add":
                record = self.kb.add(self._parse_record(rest))
                self.console.print(f"[green]✔ Added {record.category} › {record.subcategory} › {record.concept}[/green]")
            elif command == "del":
                record = self._parse_record(rest)
                path = record.path(self.kb.store.width)
                if self.kb.delete_note(path, record.note):
                    self.console.print("[green]✔ Note deleted[/green]")
                else:
                    self.console.print("[yellow]⚠ No such note[/yellow]")
            elif command == "delsub":
                keys = [k.strip() for k in rest.split("|")]
                removed = self.kb.delete_subtree(keys)
                self.console.print(f"[green]✔ Removed {removed} note(s)[/green]")
            elif command == "save":
                target = self.kb.save(rest.strip() or None)
                self.console.print(f"[green]✔ Saved {len(self.kb.store)} notes → {target}[/green]")
            elif command == "open":
                self.open(Path(rest.strip()))
            else:
                self._run_query(lambda o: self.kb.search(line, offset=o), f"Search: {line}")
        except (MicroficheError, ValueError, OSError) as e:
            self.console.print(f"[red]✗ {e}[/red]")
        return True

    def open(self, path: Path):
        try:
            outcome = self.kb.load(path)
        except MalformedRecordError as e:
            if e.report is not None:
                self.console.print(display.validation_panel(e.report))
            raise
        self.console.print(f"[green]✔ Loaded {outcome.record_count} notes from {outcome.path}[/green]")
        if not outcome.report.passed:
            self.console.print(display.validation_panel(outcome.report))

    # ==================== Helpers ====================

    def _label(self) -> str:
        return self.kb.path.name if self.kb.path else "Microfiche"

    def _run_query(self, run: Callable[[int], QueryResult], title: str):
        self._last_query, self._last_title, self._offset = run, title, 0
        self._show(run(0))

    def _more(self):
        if self._last_query is None:
            self.console.print("[yellow]⚠ Nothing to page through[/yellow]")
            return
        self._offset += DISPLAY_LIMIT
        result = self._last_query(self._offset)
        if not result.matches:
            self.console.print("[dim]No more results.[/dim]")
            return
        self._show(result)

    def _show(self, result: QueryResult):
        if result.total == 0:
            self.console.print("[dim]No matching notes.[/dim]")
            return
        self.console.print(display.results_table(result, self._last_title))

    def _stats(self):
        stats = self.kb.stats()
        report = self.kb.analyze_terms()
        self.console.print(display.stats_table(stats, report.unique_terms))
        self.console.print(display.category_table(stats))

    def _terms(self):
        report = self.kb.analyze_terms()
        self.console.print(display.cooccurrence_table(report))
        self.console.print(display.category_terms_panel(report))

    def _validate(self):
        if self.kb.path is None:
            self.console.print("[yellow]⚠ No file loaded[/yellow]")
            return
        width, rows = read_rows(self.kb.path)
        # Header is line 1 of the file
        report = self.kb.validate(rows, width=width, start_line=2)
        self.console.print(display.validation_panel(report))

    def _parse_record(self, text: str) -> Record:
        parts = [p.strip() for p in text.split("|")]
        width = self.kb.store.width
        if len(parts) != width:
            raise ValueError(f"expected {width} fields separated by '|', got {len(parts)}")
        return Record.from_row(parts, width)


##  ##                                                               ##  ##  --  --  Entry Point  --  --  ##  ##
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="microfiche", description="Browse a hierarchical notes CSV.")
    parser.add_argument("file", nargs="?", type=Path, default=KB_FILE, help=f"CSV file (default: {KB_FILE})")
    parser.add_argument("-c", "--command", action="append", default=[],
                        help="run a command and exit (repeatable)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    console = Console()
    session = Session(KnowledgeStore(), console)

    console.print(Panel(
        "[bold cyan]MICROFICHE[/bold cyan]\n"
        "[dim]Category › Subcategory › Concept › Note • type 'help' for commands[/dim]",
        border_style="bright_cyan",
    ))

    if not args.file.exists():
        console.print(f"[red]✗ {args.file} not found. Use 'add' and 'save {args.file}' to start one.[/red]")
        session.kb.path = args.file
    else:
        try:
            session.open(args.file)
        except (MicroficheError, ValueError, OSError) as e:
            console.print(f"[red]✗ Could not load {args.file}: {e}[/red]")
            return 1

    if args.command:
        for command in args.command:
            session.execute(command)
        return 0

    while True:
        try:
            line = console.input("[bold cyan]fiche>[/bold cyan] ")
        except (EOFError, KeyboardInterrupt):
            console.print()
            break
        if not session.execute(line):
            break
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
