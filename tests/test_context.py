from scholar.config.prompt_templates import NO_CONTEXT_SENTINEL
from scholar.src.core.context import assemble_context
from scholar.src.core.models import RetrievedPassage


def _passage(content: str, title: str, authors=(), page=None, score=0.5) -> RetrievedPassage:
    return RetrievedPassage(id=f"id-{title}", index_id="public-research", content=content, score=score, paper_id=f"p-{title}", title=title, authors=authors, page_number=page)


def test_empty_returns_sentinel():
    assert assemble_context([]) == NO_CONTEXT_SENTINEL


def test_numbering_follows_rank_order():
    context = assemble_context([
        _passage("Attention weights tokens.", "Attention", ("Vaswani", "Shazeer"), page=3),
        _passage("Graphs pass messages.", "GNN", ("Kipf",)),
    ])

    assert context == (
        "[1] Attention weights tokens.\nSource: Attention by Vaswani, Shazeer (Page 3)"
        "\n\n"
        "[2] Graphs pass messages.\nSource: GNN by Kipf"
    )


def test_missing_authors_render_as_empty_join():
    context = assemble_context([_passage("Body text.", "Untitled")])
    assert context.endswith("Source: Untitled by ")
