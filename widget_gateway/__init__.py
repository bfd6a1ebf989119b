"""Backend gateway for the chat widget: OpenAI Assistant runs + Supabase transcripts."""

__version__ = "0.1.0"
