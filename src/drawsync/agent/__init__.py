"""AI generation: providers, prompts and the generation pipeline."""
