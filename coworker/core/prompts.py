# Shared JSON output contract - prepended to all JSON-returning prompts.
_JSON_CONTRACT = """IMPORTANT OUTPUT RULES:
- Output must be valid JSON. No Markdown, no code fences, no comments.
- Use double quotes for all strings.
- Never invent facts about the user's task; use only the context provided.
"""


class PromptManager:
    """
    Centralized manager for all LLM prompts.

    Each request is split into instructions (the system side) and context
    (the user side), matching the completion provider's signature.
    """

    # --- Intent Classifier ---
    INTENT_INSTRUCTIONS = _JSON_CONTRACT + """
    You are Momentum's AI coworker. A user is working on a specific task and has sent a message.

    Decide ONE of:
    - "direct": you can help right now (advice, explanation, brainstorming, status questions, small talk).
      Write the answer yourself: specific, actionable, encouraging, 2-4 sentences.
    - "needsClarification": the user wants you to look up information, find data, compare options
      or investigate something. Do NOT answer yet. Ask 2-3 clarifying questions that narrow the scope,
      relate to the task context and are not yes/no questions.

    Return ONLY a JSON object, one of:
    {{"kind": "direct", "answer": "<your answer>"}}
    {{"kind": "needsClarification", "questions": ["<question 1>", "<question 2>"]}}
    """

    INTENT_STRICT_SUFFIX = """
    Your previous reply could not be parsed. Reply with a single JSON object and nothing else.
    "kind" MUST be exactly "direct" or "needsClarification".
    If "kind" is "direct", "answer" MUST be a non-empty string.
    If "kind" is "needsClarification", "questions" MUST be an array of 1 to 5 non-empty strings.
    """

    INTENT_CONTEXT = """Task Context:
{task_context}

Recent Conversation:
{history}

User Message: "{utterance}"
"""

    # --- Research Synthesizer ---
    RESEARCH_INSTRUCTIONS = _JSON_CONTRACT + """
    You are Momentum's AI coworker performing research for a user working on a specific task.

    Find relevant information and synthesize it into a clear, actionable summary.

    The "summary" field is Markdown text:
    - Start with a 1-2 sentence executive summary
    - Key findings (3-5 bullet points with specific data/facts)
    - Specific recommendations relevant to their task
    - Cite sources inline where possible

    Put every source URL or reference you relied on in "sources".

    Return ONLY a JSON object:
    {{"summary": "<markdown summary>", "sources": ["<url or reference>"]}}
    """

    RESEARCH_CONTEXT = """Research Request: {query}

Clarifying Details:
{clarifications}

Task Context: Working on "{task_title}"
{task_context}

Please provide a comprehensive summary with actionable insights.
"""

    # --- Assistant messages ---
    CLARIFICATION_INTRO = "I have a few questions to help me research this better:"

    CLASSIFICATION_APOLOGY = (
        "Sorry, I couldn't process that message right now. "
        "Please try again in a moment."
    )

    RESEARCH_APOLOGY = (
        "Sorry, I ran into a problem while researching that. "
        "Your answers are saved, so you can retry without answering again."
    )

    @staticmethod
    def get_prompt(template_name: str, **kwargs) -> str:
        """
        Get a formatted prompt by name.
        Example: PromptManager.get_prompt('INTENT_CONTEXT', utterance='hi', ...)
        """
        template = getattr(PromptManager, template_name, None)
        if not template:
            raise ValueError(f"Prompt template '{template_name}' not found.")
        return template.format(**kwargs)
