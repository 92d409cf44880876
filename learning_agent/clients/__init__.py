from learning_agent.clients.groq_client import GroqClient

__all__ = ["GroqClient"]
