"""
docrag/core/prompts/context_builder.py

Formats a RetrievalResult into the context block handed to the language model.

Layout:
-------
## Retrieved Document Context [Query Type: OVERVIEW/SUMMARY]
<intro naming the number of documents, overview note for overview queries>
---
### Source: handbook.pdf (Part 3/12) [pdf]
**Relevance**: 87.5%

<chunk text>

---
...
## Instructions for Using This Context
<general usage rules + query-type-specific instructions>
"""

import logging
from typing import List

from docrag.core.retrievals.query_classifier import QUERY_TYPE_LABELS, classify_query
from docrag.models.metadata_models import ChunkSource, QueryType, RetrievalResult, RetrievedChunk

logger = logging.getLogger(__name__)

OVERVIEW_NOTE_HEADER = "\n**Note for Overview Queries**: The context below includes:\n"
OVERVIEW_NOTE_FOOTER = "All organized to provide comprehensive coverage of the topic.\n"

# One line per retrieval source, in the order they are listed
OVERVIEW_SOURCE_LINES = {
    ChunkSource.SEMANTIC: "- Semantically relevant chunks matching your query",
    ChunkSource.STRUCTURAL: "- Structural elements (introductions, headers, key concepts)",
    ChunkSource.BOUNDARY: "- Beginning sections for additional context",
}

QUERY_TYPE_INSTRUCTIONS = {
    QueryType.OVERVIEW: """
QUERY TYPE DETECTED: OVERVIEW/SUMMARY REQUEST

For overview and summary requests, you MUST:
1. **Synthesize information across ALL chunks** - The context contains fragments from throughout the document:
   - Identify main themes that appear across multiple chunks
   - Connect related concepts that may be in different chunks
   - Create a logical flow even if the chunks are out of order

2. **Create hierarchical structure** - Organize content into:
   - Main chapter/topic title and introduction
   - Major sections (##) for key concepts
   - Subsections (###) for specific topics within each concept

3. **Extract ALL key information**: definitions, formulas, relationships,
   specific values, examples, applications and learning objectives

4. **Identify gaps** - If the context references concepts it does not explain,
   state: "The provided context contains [X], but complete details about [Y] may not be fully captured."
""",
    QueryType.EXPLANATION: """
QUERY TYPE DETECTED: EXPLANATION REQUEST

For explanation requests, you MUST:
1. **Provide complete context** - explain what the concept is, why it matters,
   how it relates to other concepts and where it is applied

2. **Include all relevant details** from the context:
   - Mathematical formulas or expressions
   - Step-by-step derivations if present
   - Examples or specific cases

3. **Build from fundamentals** - Briefly establish the foundational ideas first.
""",
    QueryType.SPECIFIC: """
STANDARD QUERY INSTRUCTIONS:
1. Answer the specific question asked
2. Provide sufficient context and detail
3. Include related information that enhances understanding
4. Use examples or illustrations when they exist in the source material
""",
}

CONTEXT_FOOTER = """
## Instructions for Using This Context

- The excerpts above are ordered by relevance to your query
- For overview queries, the overview note lists which kinds of chunks were retrieved
- Each chunk may be part of a larger context within the document
- The relevance score indicates how closely the content matches your question
- Always cite the document name when using information from the context
- If the context doesn't fully answer the question, acknowledge what's missing
"""


def format_chunk(chunk: RetrievedChunk) -> str:
    """One "### Source" block with file name, position, format and relevance."""
    metadata = chunk.metadata
    file_name = metadata.file_name or 'Unknown Document'

    position = ''
    if metadata.chunk_index is not None:
        total = metadata.total_chunks if metadata.total_chunks is not None else '?'
        position = f" (Part {metadata.chunk_index + 1}/{total})"

    doc_format = f" [{metadata.format}]" if metadata.format else ''
    relevance = (1 - chunk.distance) * 100

    return (
        f"\n### Source: {file_name}{position}{doc_format}\n"
        f"**Relevance**: {relevance:.1f}%\n"
        f"\n{chunk.document}\n"
        f"\n---\n"
    )


def overview_note(chunks: List[RetrievedChunk]) -> str:
    """Describe the retrieval sources that actually contributed to an overview context."""
    present = {chunk.source for chunk in chunks}
    lines = [line for source, line in OVERVIEW_SOURCE_LINES.items() if source in present]
    return OVERVIEW_NOTE_HEADER + "\n".join(lines) + "\n" + OVERVIEW_NOTE_FOOTER


def build_rag_context(result: RetrievalResult, query: str = "") -> str:
    """
    Build the language-model context block for a retrieval result.

    Parameters:
    -----------
    result : RetrievalResult
        Output of MultiStrategyRetriever.retrieve
    query : str
        The user question (selects the query-type label and instructions)

    Returns:
    --------
    str:
        Markdown context, or "" when nothing was retrieved
    """
    if result.is_empty():
        return ""

    query_type = classify_query(query)
    label = QUERY_TYPE_LABELS[query_type]

    header = (
        f"\n## Retrieved Document Context [Query Type: {label}]\n"
        f"\nThe following relevant excerpts have been retrieved from "
        f"{len(result.files_queried)} document(s) to help answer your question. "
        f"These chunks have been selected using retrieval strategies optimized "
        f"for {query_type.value} queries.\n"
    )
    if query_type == QueryType.OVERVIEW:
        header += overview_note(result.chunks)
    header += "\n---\n"

    body = "\n".join(format_chunk(chunk) for chunk in result.chunks)

    footer = (
        CONTEXT_FOOTER
        + QUERY_TYPE_INSTRUCTIONS[query_type]
        + "\nNow, please answer the user's question using this context as your primary source.\n"
    )

    logger.debug(f"Built context from {len(result.chunks)} chunks ({label})")
    return header + body + footer
