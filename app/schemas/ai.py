from __future__ import annotations

from pydantic import Field

from app.schemas.generation import (
    AchievementSuggestion,
    CamelModel,
    EnhanceContext,
    EnhancementQuestion,
    GatheredAnswer,
    LanguageCode,
    LinkedInDataRequest,
    ProjectItem,
    ResumeData,
    SummaryType,
)


class GenerateResumeRequest(ResumeData):
    resume_id: str | None = Field(default=None, max_length=100)


class EnhanceTextRequest(CamelModel):
    text: str = Field(max_length=5000)
    context: EnhanceContext = "achievement"
    language: LanguageCode = "es"
    job_title: str | None = Field(default=None, max_length=200)
    resume_id: str | None = Field(default=None, max_length=100)


class ImproveSectionRequest(CamelModel):
    # Section names are checked by the sanitizer so an unknown one maps to a 400.
    section_type: str = Field(max_length=50)
    original_text: str = Field(max_length=10000)
    user_instructions: str = Field(default="", max_length=2000)
    language: LanguageCode = "es"
    gathered_context: list[GatheredAnswer] = Field(default_factory=list, max_length=10)
    resume_id: str | None = Field(default=None, max_length=100)


class LinkedInParseRequest(LinkedInDataRequest):
    resume_id: str | None = Field(default=None, max_length=100)


class AchievementSuggestionsRequest(CamelModel):
    profession: str = Field(max_length=200)
    projects: list[ProjectItem] = Field(default_factory=list, max_length=20)
    language: LanguageCode = "es"


class SummarySuggestionsRequest(CamelModel):
    profession: str = Field(max_length=200)
    achievements: list[str] = Field(default_factory=list, max_length=30)
    project_descriptions: list[str] = Field(default_factory=list, max_length=20)
    language: LanguageCode = "es"
    summary_type: SummaryType = "experience"


class JobTitleAchievementsRequest(CamelModel):
    job_title: str = Field(max_length=200)
    language: LanguageCode = "es"


class ValidateProfessionRequest(CamelModel):
    profession: str = Field(max_length=200)


class ProfessionSuggestionsRequest(CamelModel):
    profession: str = Field(max_length=200)
    language: LanguageCode = "es"


class EnhancementQuestionsRequest(CamelModel):
    section_type: str = Field(max_length=50)
    recommendation: str = Field(max_length=1000)
    original_text: str = Field(default="", max_length=10000)
    language: LanguageCode = "es"


class AnswerSuggestionRequest(CamelModel):
    question: str = Field(max_length=500)
    question_category: str = Field(default="context", max_length=50)
    original_text: str = Field(default="", max_length=10000)
    recommendation: str = Field(default="", max_length=1000)
    section_type: str = Field(max_length=50)
    language: LanguageCode = "es"


class DirectEnhanceRequest(CamelModel):
    checklist_item_id: str = Field(max_length=100)
    section_type: str = Field(max_length=50)
    original_text: str = Field(max_length=10000)
    language: LanguageCode = "es"
    resume_id: str | None = Field(default=None, max_length=100)


class AchievementSuggestionsResponse(CamelModel):
    achievements: list[AchievementSuggestion]


class SummarySuggestionsResponse(CamelModel):
    summaries: list[str]


class JobTitleAchievementsResponse(CamelModel):
    achievements: list[str]


class ProfessionSuggestionsResponse(CamelModel):
    skills: list[str]


class EnhancementQuestionsResponse(CamelModel):
    questions: list[EnhancementQuestion]


class AnswerSuggestionResponse(CamelModel):
    suggestion: str
