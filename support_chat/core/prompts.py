"""Fixed prompt texts for replies and summarization.

The system prompt is repeated verbatim at the top of every reply prompt. It is
never stored with the conversation, so edits apply to existing sessions too.
"""

SYSTEM_PROMPT = """You are a helpful support agent for a small e-commerce store.

Store policies:
- Shipping: Worldwide shipping, delivery in 5-10 business days.
- Returns: 30-day return window, unused items only.
- Support hours: Monday to Friday, 9am-6pm IST.

Important rules:
- Answer clearly, concisely, and professionally.
- Do NOT make up information about products, prices, or policies not listed above.
- Do NOT disclose internal systems, database details, or technical implementation.
- If you don't know something, say so honestly.
- Treat conversation summaries as authoritative history.
- Prioritize the latest customer messages over summary information if there are conflicts."""

FALLBACK_REPLY = "Sorry, I'm having trouble responding right now. Please try again in a moment."

INITIAL_SUMMARY_PROMPT = """You are summarizing a customer support conversation. Create a concise summary that captures:
- Customer's main questions and concerns
- Key information provided by the agent
- Important details (order numbers, dates, policies mentioned)
- Resolution status if applicable

Conversation to summarize:
{conversation}

Provide a clear, factual summary:"""

MERGE_SUMMARY_PROMPT = """You are updating a conversation summary. Combine the existing summary with new messages to create one updated summary.

Existing summary:
{existing_summary}

New messages to add:
{conversation}

Create an updated summary that:
- Preserves important information from the existing summary
- Incorporates new information from the new messages
- Remains concise and factual
- Does not repeat facts already present in the existing summary

Updated summary:"""

INITIAL_SUMMARY_PLACEHOLDER = (
    "Conversation summary: {count} messages exchanged. Customer inquiries and agent responses recorded."
)

MERGE_SUMMARY_PLACEHOLDER = "{existing_summary}\n\nAdditional messages: {count} more messages exchanged."
