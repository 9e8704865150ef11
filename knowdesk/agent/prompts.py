"""Prompt text for grounded answering."""

NO_ANSWER_SENTENCE = (
    "I don't have enough information in the provided documents to answer that."
)
NO_INFORMATION_MESSAGE = (
    "I couldn't find any information about that in the knowledge base."
)
UNABLE_TO_ANSWER_MESSAGE = (
    "I'm unable to answer that right now. I'm passing your message to a member of our team."
)
HANDED_OFF_NOTICE = "A member of our team will get back to you shortly."

GROUNDING_RULES = (
    "Answer only from the numbered passages you are given. "
    "Cite every passage you rely on as [n]. "
    "Do not use outside knowledge. "
    f'If the passages do not contain the answer, reply exactly: "{NO_ANSWER_SENTENCE}"'
)


def passage_header(number: int, title: str, chunk_index: int, page_number) -> str:
    location = f"chunk {chunk_index}"
    if page_number is not None:
        location += f", page {page_number}"
    return f'[{number}] "{title}" ({location})'


def build_system_prompt(agent_prompt: str) -> str:
    return f"{agent_prompt.strip()}\n\n{GROUNDING_RULES}"


def build_user_prompt(passages, question: str) -> str:
    blocks = [
        f"{passage_header(n, p.document_title, p.chunk_index, p.page_number)}\n{p.content}"
        for n, p in enumerate(passages, start=1)
    ]
    return "PASSAGES:\n\n" + "\n\n".join(blocks) + f"\n\nQUESTION: {question}"
