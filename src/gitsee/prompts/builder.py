"""
Prompt builder - Constructs exploration system prompts from modular components.

Uses a template-based system with reusable components.
"""

import re
from typing import Dict, List, Any, Optional
from dataclasses import dataclass


@dataclass
class PromptComponent:
    """Represents a reusable prompt component"""
    name: str
    content: str
    required: bool = True


class PromptBuilder:
    """
    Builds system prompts from modular components.

    Components can be:
    - Explorer role and instructions
    - Rules and guidelines
    - Context information
    """

    def __init__(self, explorer_instructions: str):
        self.components: Dict[str, PromptComponent] = {}
        self._register_default_components(explorer_instructions)

    def _register_default_components(self, explorer_instructions: str):
        """Register default prompt components"""

        self.register(PromptComponent(
            name="EXPLORER_ROLE",
            content=explorer_instructions.strip(),
            required=True
        ))

        self.register(PromptComponent(
            name="RULES",
            content="""## Important Rules

1. **Read-only**: Your tools only inspect the checkout; nothing you do changes the repository
2. **One tool per step**: Pick the single most useful tool at each step
3. **Paths are relative**: Pass file paths relative to the repository root
4. **Step budget**: You have at most {{MAX_STEPS}} steps; finish well before that
5. **Always finish with submit_answer**: The exploration only counts once you call submit_answer""",
            required=True
        ))

    def register(self, component: PromptComponent):
        """Register a prompt component"""
        self.components[component.name] = component

    def build(
        self,
        include: Optional[List[str]] = None,
        exclude: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Build the full system prompt.

        Args:
            include: Component names to include (None = all required plus context sections)
            exclude: Component names to exclude
            context: Values substituted for {{VARIABLE}} placeholders

        Returns:
            Complete system prompt string
        """
        if include is None:
            components_to_use = list(self.components.values())
        else:
            components_to_use = [
                self.components[name]
                for name in include
                if name in self.components
            ]

        if exclude:
            components_to_use = [
                comp for comp in components_to_use
                if comp.name not in exclude
            ]

        sections = []
        for component in components_to_use:
            content = component.content
            if context:
                content = self._apply_context(content, context)
            sections.append(content)

        return "\n\n====\n\n".join(sections)

    def _apply_context(self, content: str, context: Dict[str, Any]) -> str:
        """Apply context variable substitutions to content"""

        def replace_var(match):
            var_name = match.group(1)
            return str(context.get(var_name, match.group(0)))

        return re.sub(r'\{\{(\w+)\}\}', replace_var, content)

    def add_context_section(self, name: str, content: str):
        """Add a dynamic context section to the prompt"""
        self.register(PromptComponent(
            name=name,
            content=content,
            required=False
        ))
