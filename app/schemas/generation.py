from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, model_validator
from pydantic.alias_generators import to_camel

LanguageCode = Literal["es", "en"]
TargetLevel = Literal["entry", "mid", "senior", "executive"]
Tone = Literal["professional", "creative", "technical", "friendly"]
SummaryType = Literal["experience", "differentiators"]
EnhanceContext = Literal["achievement", "summary", "project", "responsibility", "differentiators"]
SectionType = Literal[
    "summary", "experience", "education", "certification", "project", "achievement", "language", "skills"
]


class CamelModel(BaseModel):
    """Model outputs and client payloads use camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NullTolerantModel(CamelModel):
    """Reads a null as "not provided" for fields that do not accept None.

    Model replies routinely send ``null`` for a company, a field of study or a flag they
    could not fill. Such keys fall back to the field default, a required text field becomes
    an empty string and null entries are dropped from lists.
    """

    @model_validator(mode="before")
    @classmethod
    def _nulls_to_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        fields = {}
        for name, info in cls.model_fields.items():
            fields[name] = info
            if info.alias:
                fields[info.alias] = info

        cleaned = {}
        for key, value in data.items():
            info = fields.get(key)
            if info is None:
                cleaned[key] = value
                continue
            if value is None:
                if not info.is_required():
                    if info.default is not None:
                        continue
                elif info.annotation is str:
                    value = ""
            elif isinstance(value, list):
                value = [item for item in value if item is not None]
            cleaned[key] = value
        return cleaned


class ExperienceItem(NullTolerantModel):
    id: str | None = None
    title: StrictStr = ""
    company: StrictStr = ""
    start_date: str | None = None
    end_date: str | None = None
    is_current: bool = False
    achievements: list[StrictStr] = Field(default_factory=list)
    responsibilities: list[StrictStr] = Field(default_factory=list)


class EducationItem(NullTolerantModel):
    id: str | None = None
    institution: StrictStr = ""
    degree: StrictStr = ""
    field: StrictStr = ""
    start_date: str | None = None
    end_date: str | None = None
    is_completed: bool = True
    gpa: str | None = None


class CertificationItem(NullTolerantModel):
    id: str | None = None
    name: StrictStr = ""
    issuer: StrictStr = ""
    date: str | None = None
    credential_id: str | None = None
    url: str | None = None


class ProjectItem(NullTolerantModel):
    id: str | None = None
    name: StrictStr = ""
    description: StrictStr = ""
    technologies: list[StrictStr] = Field(default_factory=list)
    url: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    is_ongoing: bool = False


class LanguageItem(NullTolerantModel):
    id: str | None = None
    name: StrictStr = ""
    level: StrictStr = ""


class AchievementItem(NullTolerantModel):
    id: str | None = None
    title: StrictStr = ""
    description: StrictStr = ""
    year: str | None = None


class ResumeData(CamelModel):
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    email: str = Field(default="", max_length=200)
    phone: str = Field(default="", max_length=50)
    country: str = Field(default="", max_length=100)
    linkedin: str | None = Field(default=None, max_length=300)
    profession: str = Field(min_length=1, max_length=200)
    target_level: TargetLevel = "mid"
    tone: Tone = "professional"
    language: LanguageCode = "es"
    summary: str = Field(default="", max_length=5000)
    job_description: str = Field(default="", max_length=5000)
    skills_raw: list[str] = Field(default_factory=list, max_length=200)
    experience: list[ExperienceItem] = Field(default_factory=list, max_length=50)
    education: list[EducationItem] = Field(default_factory=list, max_length=30)
    certifications: list[CertificationItem] = Field(default_factory=list, max_length=50)
    projects: list[ProjectItem] = Field(default_factory=list, max_length=50)
    languages: list[LanguageItem] = Field(default_factory=list, max_length=30)
    achievements: list[AchievementItem] = Field(default_factory=list, max_length=50)


class LinkedInDataRequest(CamelModel):
    profession: str = Field(default="", max_length=200)
    about: str = Field(default="", max_length=10000)
    experience: str = Field(default="", max_length=20000)
    education: str = Field(default="", max_length=10000)
    certifications: str = Field(default="", max_length=10000)
    projects: str = Field(default="", max_length=20000)
    skills: str = Field(default="", max_length=10000)
    recommendations: str = Field(default="", max_length=10000)
    target_language: LanguageCode = "es"


class EnhancedExperience(NullTolerantModel):
    title: StrictStr
    company: StrictStr
    duration: StrictStr = ""
    location: str | None = None
    description: StrictStr = ""
    achievements: list[StrictStr] = Field(default_factory=list)
    skills: list[StrictStr] = Field(default_factory=list)
    impact: list[StrictStr] = Field(default_factory=list)


class EnhancedEducation(NullTolerantModel):
    degree: StrictStr
    institution: StrictStr
    field: StrictStr = ""
    duration: StrictStr = ""
    gpa: str | None = None
    relevant_coursework: list[StrictStr] = Field(default_factory=list)
    honors: list[StrictStr] = Field(default_factory=list)


class EnhancedProject(NullTolerantModel):
    name: StrictStr
    description: StrictStr = ""
    technologies: list[StrictStr] = Field(default_factory=list)
    duration: StrictStr = ""
    url: str | None = None
    achievements: list[StrictStr] = Field(default_factory=list)
    impact: StrictStr = ""


class EnhancedCertification(NullTolerantModel):
    name: StrictStr
    issuer: StrictStr = ""
    date: StrictStr = ""
    credential_id: str | None = None
    url: str | None = None
    skills: list[StrictStr] = Field(default_factory=list)


class LanguageProficiency(NullTolerantModel):
    language: StrictStr
    level: StrictStr = ""
    certifications: list[StrictStr] = Field(default_factory=list)


class ResumeSkills(NullTolerantModel):
    technical: list[StrictStr] = Field(default_factory=list)
    soft: list[StrictStr] = Field(default_factory=list)
    tools: list[StrictStr] = Field(default_factory=list)


class ContactInfo(NullTolerantModel):
    full_name: StrictStr = ""
    email: StrictStr = ""
    phone: StrictStr = ""
    location: StrictStr = ""
    linkedin: str | None = None


class ResumeMetadata(CamelModel):
    generated_at: str
    tokens_used: int
    ai_provider: str
    model: str


class GeneratedResume(NullTolerantModel):
    professional_summary: StrictStr = Field(min_length=1)
    experience: list[EnhancedExperience]
    education: list[EnhancedEducation]
    skills: ResumeSkills = Field(default_factory=ResumeSkills)
    projects: list[EnhancedProject] = Field(default_factory=list)
    certifications: list[EnhancedCertification] = Field(default_factory=list)
    achievements: list[StrictStr] = Field(default_factory=list)
    languages: list[LanguageProficiency] = Field(default_factory=list)
    contact_info: ContactInfo = Field(default_factory=ContactInfo)
    metadata: ResumeMetadata | None = None


class ParsedLinkedInProfile(NullTolerantModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    country: str = ""
    linkedin: str = ""
    language: LanguageCode | None = None
    target_level: TargetLevel = "mid"
    profession: str = ""
    tone: Tone = "professional"
    summary: str = ""
    job_description: str = ""
    skills_raw: list[StrictStr] = Field(default_factory=list)
    experience: list[ExperienceItem] = Field(default_factory=list)
    education: list[EducationItem] = Field(default_factory=list)
    certifications: list[CertificationItem] = Field(default_factory=list)
    projects: list[ProjectItem] = Field(default_factory=list)
    languages: list[LanguageItem] = Field(default_factory=list)
    achievements: list[AchievementItem] = Field(default_factory=list)


class AchievementSuggestion(CamelModel):
    title: StrictStr = Field(min_length=1)
    description: StrictStr = Field(min_length=1)


class EnhancementQuestion(CamelModel):
    id: StrictStr = Field(min_length=1)
    question: StrictStr = Field(min_length=1)
    category: StrictStr = Field(min_length=1)
    required: StrictBool


class ProfessionValidation(CamelModel):
    is_valid: bool
    message: str | None = None


class SkillList(CamelModel):
    skills: list[StrictStr] = Field(min_length=1)


class ProfessionSkills(CamelModel):
    es: SkillList
    en: SkillList


class ImprovementResult(CamelModel):
    text: str
    improved: bool
    reason: str | None = None


class GatheredAnswer(CamelModel):
    question_id: str = Field(default="", max_length=50)
    answer: str = Field(max_length=1000)
