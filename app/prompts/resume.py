from __future__ import annotations

from app.ai.types import CompletionOptions, GenerationTask
from app.prompts.common import (
    NO_FABRICATION_RULES,
    PromptSpec,
    bullet_list,
    language_name,
    or_not_provided,
    with_preamble,
    wrap,
)
from app.schemas.generation import LinkedInDataRequest, ResumeData

LINKEDIN_MAX_TOKENS = 6000
LINKEDIN_RESTRICTED_MAX_TOKENS = 16000

_LEVEL_GUIDANCE = {
    "entry": "Focus on potential, education, academic projects, and transferable skills.",
    "mid": "Balance technical experience with professional growth and project ownership.",
    "senior": "Highlight technical leadership, business impact, mentoring, and solution architecture.",
    "executive": "Focus on strategic vision, organizational transformation, and team leadership.",
}

_TONE_GUIDANCE = {
    "professional": "Formal and results-focused.",
    "creative": "Innovative, highlighting creative thinking and unique solutions.",
    "technical": "Technical depth, architecture, and expertise in specific technologies.",
    "friendly": "Accessible but professional, highlighting collaboration and teamwork.",
}

_RESUME_SCHEMA = """interface GeneratedResume {
  professionalSummary: string;
  experience: { title: string; company: string; duration: string; location?: string;
                description: string; achievements: string[]; skills: string[]; impact: string[] }[];
  education: { degree: string; institution: string; field: string; duration: string;
               gpa?: string; relevantCoursework: string[]; honors: string[] }[];
  skills: { technical: string[]; soft: string[]; tools: string[] };
  projects: { name: string; description: string; technologies: string[]; duration: string;
              url?: string; achievements: string[]; impact: string }[];
  certifications: { name: string; issuer: string; date: string; credentialId?: string;
                    url?: string; skills: string[] }[];
  achievements: string[];
  languages: { language: string; level: string; certifications: string[] }[];
  contactInfo: { fullName: string; email: string; phone: string; location: string; linkedin?: string };
}"""

_LINKEDIN_SCHEMA = """{
  "firstName": "string", "lastName": "string", "email": "string", "phone": "string",
  "country": "string", "linkedin": "string", "language": "%(language)s",
  "targetLevel": "entry" | "mid" | "senior" | "executive",
  "profession": "string",
  "tone": "professional" | "creative" | "technical" | "friendly",
  "summary": "string", "jobDescription": "string", "skillsRaw": ["string"],
  "experience": [{"id": "string", "title": "string", "company": "string", "startDate": "YYYY-MM",
                  "endDate": "YYYY-MM", "isCurrent": boolean, "achievements": ["string"],
                  "responsibilities": ["string"]}],
  "education": [{"id": "string", "institution": "string", "degree": "string", "field": "string",
                 "startDate": "YYYY-MM", "endDate": "YYYY-MM", "isCompleted": boolean, "gpa": "string"}],
  "certifications": [{"id": "string", "name": "string", "issuer": "string", "date": "YYYY-MM",
                      "credentialId": "string", "url": "string"}],
  "projects": [{"id": "string", "name": "string", "description": "string", "technologies": ["string"],
                "url": "string", "startDate": "YYYY-MM", "endDate": "YYYY-MM", "isOngoing": boolean}],
  "languages": [{"id": "string", "name": "string", "level": "basic" | "intermediate" | "advanced" | "native"}],
  "achievements": [{"id": "string", "title": "string", "description": "string", "year": "YYYY"}]
}"""


def _experience_block(data: ResumeData) -> str:
    if not data.experience:
        return "- No work experience provided."
    lines = []
    for exp in data.experience:
        end = "Current" if exp.is_current else or_not_provided(exp.end_date)
        lines.append(
            f"- {exp.title} ({exp.company}, {or_not_provided(exp.start_date)} - {end})\n"
            f"  Responsibilities: {'; '.join(exp.responsibilities) or 'not provided'}\n"
            f"  Achievements: {'; '.join(exp.achievements) or 'not provided'}"
        )
    return "\n".join(lines)


def _education_block(data: ResumeData) -> str:
    if not data.education:
        return "- No education provided."
    return "\n".join(
        f"- {edu.degree} in {or_not_provided(edu.field)} ({edu.institution}, "
        f"{or_not_provided(edu.start_date)} - {or_not_provided(edu.end_date) if edu.is_completed else 'In progress'})"
        for edu in data.education
    )


def _projects_block(data: ResumeData) -> str:
    if not data.projects:
        return "- No projects provided."
    return "\n".join(
        f"- {proj.name}: {or_not_provided(proj.description)}\n"
        f"  Technologies: {', '.join(proj.technologies) or 'not provided'}"
        for proj in data.projects
    )


def build_resume_prompt(data: ResumeData) -> PromptSpec:
    output_language = language_name(data.language)
    contact = " | ".join(
        part for part in (f"{data.first_name} {data.last_name}".strip(), data.email, data.phone, data.country) if part
    )
    certifications = bullet_list(
        f"{cert.name} ({or_not_provided(cert.issuer)}, {or_not_provided(cert.date)})" for cert in data.certifications
    )
    languages = bullet_list(f"{lang.name} ({or_not_provided(lang.level)})" for lang in data.languages)
    achievements = bullet_list(
        f"{ach.title}: {ach.description}".strip(": ") for ach in data.achievements
    )

    body = f"""You are an expert recruiter and resume writer.
Generate a professional, ATS-optimized resume in valid JSON, based ONLY on the user information below.
Output language: {output_language}. Tone: {data.tone} ({_TONE_GUIDANCE[data.tone]})
Experience level: {data.target_level} ({_LEVEL_GUIDANCE[data.target_level]})

<PROFESSION>{data.profession}</PROFESSION>
<CONTACT>{or_not_provided(contact)}</CONTACT>
<LINKEDIN>{or_not_provided(data.linkedin)}</LINKEDIN>

{wrap("JOB_DESCRIPTION", data.job_description)}

{wrap("SUMMARY", data.summary)}

<SKILLS>{', '.join(data.skills_raw) or 'not provided'}</SKILLS>

<EXPERIENCE>
{_experience_block(data)}
</EXPERIENCE>

<EDUCATION>
{_education_block(data)}
</EDUCATION>

<CERTIFICATIONS>
{certifications}
</CERTIFICATIONS>

<PROJECTS>
{_projects_block(data)}
</PROJECTS>

<LANGUAGES>
{languages}
</LANGUAGES>

<ACHIEVEMENTS>
{achievements}
</ACHIEVEMENTS>

CRITICAL DATA FIDELITY RULES:
{NO_FABRICATION_RULES}
- Only enhance, optimize, and restructure the information the user already provided
- Where a section is "not provided", leave the matching array empty instead of inventing entries

GENERATION RULES:
1. Professional summary: first person, 3-4 short paragraphs built from the user's own experience.
2. Experience: merge responsibilities and achievements, 3-5 bullets per position, Action + Result
   structure without invented numbers.
3. Skills: split into technical, soft, and tools. Add soft skills only when the experience supports them.
4. Education: one line per entry; relevantCoursework and honors only when the user provided them.
5. Languages: brief format such as "Spanish (Native)".
6. Review spelling, punctuation, and grammar for {output_language}.

OUTPUT CONTRACT:
Return ONLY a valid JSON object that follows this TypeScript interface. No markdown, no extra text.
{_RESUME_SCHEMA}"""

    return PromptSpec(task=GenerationTask.GENERATE_RESUME, prompt=with_preamble(body))


def build_linkedin_prompt(request: LinkedInDataRequest) -> PromptSpec:
    target = "en" if request.target_language == "en" else "es"
    output_language = language_name(target)
    schema = _LINKEDIN_SCHEMA % {"language": target}
    body = f"""You are an expert in human resources and professional profile analysis.
Extract structured resume data from the LinkedIn plain text below.

OUTPUT LANGUAGE: {output_language.upper()}
Every text field in your response MUST be in {output_language}. Translate all content from the input,
including project names and descriptions, regardless of its original language.

<PROFESSION>{or_not_provided(request.profession)}</PROFESSION>
If a profession is provided above, copy it exactly into the "profession" field. Do NOT infer or change it.

{wrap("ABOUT", request.about)}

{wrap("EXPERIENCE", request.experience)}

{wrap("EDUCATION", request.education)}

{wrap("CERTIFICATIONS", request.certifications)}

{wrap("PROJECTS", request.projects)}

{wrap("SKILLS", request.skills)}

{wrap("RECOMMENDATIONS", request.recommendations)}

EXTRACTION RULES:
{NO_FABRICATION_RULES}
- Extract only what the text states. Sections marked "not provided" produce empty arrays
- For dates use YYYY-MM, or YYYY if only the year is known
- Generate unique ids with prefixes such as "exp-", "edu-", "cert-", "proj-", "lang-", "ach-"
- targetLevel from total years of experience: 0-2 entry, 3-5 mid, 6-10 senior, 11+ executive
- skillsRaw: every skill, tool, technology, and methodology mentioned in skills, experience, and projects.
  Ignore company names and job titles
- experience[].responsibilities: present tense, action verbs, only explicitly mentioned items
- experience[].achievements: extract explicit accomplishments. If none are stated, rephrase the listed
  responsibilities as outcomes. Keep numbers only when they appear in the original text
- jobDescription: 2-3 sentences built from the most recent role and the top skills
- If there is no contact information, leave those fields empty. Never use placeholders

OUTPUT CONTRACT:
Return ONLY a valid JSON object (starting with {{ and ending with }}) with this structure:
{schema}"""

    return PromptSpec(
        task=GenerationTask.PARSE_LINKEDIN_DATA,
        prompt=with_preamble(body),
        options=CompletionOptions(temperature=0.1, max_tokens=LINKEDIN_MAX_TOKENS, json_mode=True),
    )
