from __future__ import annotations

from typing import Sequence

from app.ai.types import CompletionOptions, GenerationTask
from app.prompts.common import (
    NO_FABRICATION_RULES,
    PromptSpec,
    bullet_list,
    language_name,
    with_preamble,
)
from app.schemas.generation import ProjectItem

JOB_TITLE_ACHIEVEMENT_COUNT = 5
PROFESSION_VALIDATION_REJECTION = "Please enter a valid profession or job title (check spelling)"

_SUMMARY_TYPE_GUIDANCE = {
    "experience": (
        "Generate 3 professional phrases that summarize the candidate's experience in 1-2 lines each, "
        'as if answering: "How would you describe your experience in one sentence?". '
        "Focus on area of specialization, key technologies, and the achievements listed below."
    ),
    "differentiators": (
        "Generate 3 concise phrases (1-2 lines each) that explain what differentiates this professional, "
        'as if answering: "What makes you different from other professionals?". '
        "Focus on unique skill combinations, distinctive approaches, and particular experiences."
    ),
}


def build_achievements_prompt(profession: str, projects: Sequence[ProjectItem], language: str) -> PromptSpec:
    output_language = language_name(language)
    if projects:
        project_lines = bullet_list(
            f"{project.name}: {project.description} (Technologies: {', '.join(project.technologies) or 'not provided'})"
            for project in projects
        )
        context = (
            f"<PROJECTS>\n{project_lines}\n</PROJECTS>\n\n"
            "Generate achievements relevant to these specific projects and the profession."
        )
    else:
        context = (
            "<PROJECTS>\n- not provided\n</PROJECTS>\n\n"
            "Generate general achievements typical for this profession, based on its common "
            "responsibilities and impact areas."
        )

    body = f"""You are an expert career coach. Generate 3-5 key achievements for the profession below.

<PROFESSION>{profession}</PROFESSION>

{context}

Instructions:
1. Highlight results and impact in a qualitative manner
2. Show leadership and initiative relevant to the profession
3. Write in {output_language}
{NO_FABRICATION_RULES}
- Avoid fake metrics like "30%" or "2x". Write "reduced load times", not "reduced load times by 40%"

OUTPUT CONTRACT (EXACTLY this JSON structure, no markdown):
[
  {{ "title": "Achievement title", "description": "Description with qualitative impact" }}
]"""

    return PromptSpec(task=GenerationTask.GENERATE_ACHIEVEMENTS, prompt=with_preamble(body))


def build_summary_prompt(
    profession: str,
    achievements: Sequence[str],
    project_descriptions: Sequence[str],
    language: str,
    summary_type: str,
) -> PromptSpec:
    output_language = language_name(language)
    guidance = _SUMMARY_TYPE_GUIDANCE.get(summary_type, _SUMMARY_TYPE_GUIDANCE["experience"])

    body = f"""You are an expert career coach and resume writer.
Generate 3 professional summary suggestions based on the achievements and projects below.

<PROFESSION>{profession}</PROFESSION>

<ACHIEVEMENTS>
{bullet_list(achievements)}
</ACHIEVEMENTS>

<PROJECTS>
{bullet_list(project_descriptions)}
</PROJECTS>

Type: {summary_type}
{guidance}

Requirements:
1. Each suggestion is 1-2 lines maximum, written in {output_language}
2. Base every suggestion on the provided achievements and projects
3. Avoid generic phrases
{NO_FABRICATION_RULES}
- Do not state years of experience unless they appear in the data above

OUTPUT CONTRACT (EXACTLY this JSON structure, no markdown):
["Suggestion 1", "Suggestion 2", "Suggestion 3"]"""

    return PromptSpec(task=GenerationTask.GENERATE_SUMMARY, prompt=with_preamble(body))


def build_job_title_achievements_prompt(job_title: str, language: str) -> PromptSpec:
    output_language = language_name(language)
    prompt = f"""You are an expert career coach and HR professional.
Generate {JOB_TITLE_ACHIEVEMENT_COUNT} achievements typical for the job title below.

<JOB_TITLE>{job_title}</JOB_TITLE>

Instructions:
1. Realistic achievements for this job title, focused on business impact and value delivered
2. Professional language in {output_language}, strong action verbs
3. Diverse: mix technical and business impact
4. Each achievement is one complete sentence, 1-2 lines maximum
5. DO NOT include specific numbers, percentages, timeframes, or metrics (avoid "30%", "3 months", "$500K").
   Users add their own details later

OUTPUT CONTRACT (EXACTLY this JSON structure, no markdown):
["Achievement 1", "Achievement 2", "Achievement 3", "Achievement 4", "Achievement 5"]"""

    return PromptSpec(task=GenerationTask.GENERATE_JOB_TITLE_ACHIEVEMENTS, prompt=prompt)


def build_profession_skills_prompt(profession: str) -> PromptSpec:
    prompt = f"""You are an expert in human resources and recruitment.

FIRST, validate whether the input below is a real, recognizable profession or job title in any language.
Random characters, keyboard smashing, test input, or single letters are INVALID.

<PROFESSION>{profession}</PROFESSION>

If the input is INVALID, respond with EXACTLY:
{{"error": "invalid_profession", "message": "The provided text does not appear to be a valid profession or job title."}}

If the input is VALID, list 20-30 current skills for this profession in SPANISH and 20-30 in ENGLISH.
Include technical skills, tools and platforms, methodologies, and soft skills in a single "skills" array.

OUTPUT CONTRACT (EXACTLY this JSON structure, no markdown):
{{"es": {{"skills": ["..."]}}, "en": {{"skills": ["..."]}}}}"""

    return PromptSpec(
        task=GenerationTask.GENERATE_PROFESSION_SUGGESTIONS,
        prompt=prompt,
        options=CompletionOptions(json_mode=True),
    )


def build_profession_validation_prompt(profession: str) -> PromptSpec:
    prompt = f"""You are a profession validator. Determine if the input is a valid, correctly spelled profession
or job title.

VALID: real job titles, career fields, or professional roles in any language, spelled correctly
(e.g., "Software Engineer", "Ingeniero de Software", "Nurse", "Recursos Humanos", "Consultant").

INVALID:
- Random characters or gibberish (e.g., "asdfgh", "1234abc", "aaa")
- Keyboard smashing, test or placeholder input (e.g., "test", "qwerty", "your profession here")
- Very short meaningless text (e.g., "ab", "xx")
- TYPOS AND MISSPELLINGS of real professions (e.g., "sofware engineer", "managr", "accountent")

<PROFESSION>{profession}</PROFESSION>

Respond with JSON only:
- If valid: {{"isValid": true}}
- If invalid: {{"isValid": false, "message": "{PROFESSION_VALIDATION_REJECTION}"}}"""

    return PromptSpec(
        task=GenerationTask.VALIDATE_PROFESSION,
        prompt=prompt,
        options=CompletionOptions(temperature=0.1, max_tokens=200, json_mode=True),
    )
