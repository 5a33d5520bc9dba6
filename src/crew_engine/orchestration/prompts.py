from __future__ import annotations

from crew_engine.models import Agent, Crew, TaskResult


def build_agent_system_prompt(agent: Agent, crew: Crew) -> str:
    sections = [
        f"You are {agent.name}, a {agent.role}.",
        f"Your Goal: {agent.goal}",
        f"Your Backstory: {agent.backstory}",
    ]
    if agent.tools:
        tool_lines = "\n".join(f"- {tool}" for tool in agent.tools)
        sections.append(
            f"You have access to these tools:\n{tool_lines}\n\n"
            "When you need to use a tool, clearly state which tool you're using and why."
        )
    sections.append(
        "Guidelines:\n"
        "- Focus on achieving your goal efficiently\n"
        "- Be thorough but concise in your responses\n"
        "- If you encounter obstacles, explain them clearly\n"
        "- Provide actionable outputs that can be used by other team members"
    )
    sections.append(
        f'You are part of the "{crew.name}" crew working on: '
        f"{crew.description or 'various tasks'}"
    )
    return "\n\n".join(sections)


def build_task_prompt(
    description: str,
    expected_output: str,
    dependency_results: list[TaskResult],
) -> str:
    prompt = f"## Your Task\n\n{description}\n\n## Expected Output\n\n{expected_output}"
    if dependency_results:
        blocks = [
            f"### Previous Task {index} Output:\n{result.output}"
            for index, result in enumerate(dependency_results, start=1)
        ]
        prompt += "\n\n## Context from Previous Tasks\n\n" + "\n\n".join(blocks)
    prompt += (
        "\n\nPlease complete this task thoroughly and provide your output "
        "in a clear, structured format."
    )
    return prompt
