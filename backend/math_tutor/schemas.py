from __future__ import annotations
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


Language = Literal["en", "ar"]


def language_name(language: Optional[str]) -> str:
	return "Arabic" if language == "ar" else "English"


class ChatRole(str, Enum):
	USER = "user"
	MODEL = "model"


class ChatMessage(BaseModel):
	role: ChatRole
	text: str


class ImageData(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	mime_type: str = Field(alias="mimeType")
	# base64 encoded bytes, without a data: URL prefix
	data: str


class ImageProblem(BaseModel):
	image: ImageData
	prompt: str = ""


SolveInput = Union[str, ImageProblem]


class ExampleProblem(BaseModel):
	id: str
	problem: str


class InitialData(BaseModel):
	examples: List[ExampleProblem]
	fact: str


class SolutionResponse(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

	status: Literal["solved", "unsolved"]
	title: str
	classification: str
	difficulty: Literal["Easy", "Medium", "Hard", "Advanced"]
	difficulty_rating: float
	difficulty_justification: str
	key_concepts: List[str]
	reasoning: str
	solution: Optional[List[str]] = None
	explanation: Optional[str] = None
	alternative_methods: Optional[str] = None
	common_pitfalls: Optional[str] = None


# ---- Action endpoint request bodies ----

class ActionRequest(BaseModel):
	action: str
	payload: Dict[str, Any] = Field(default_factory=dict)


class InitialDataPayload(BaseModel):
	language: Language = "en"


class SolvePayload(BaseModel):
	problem: SolveInput
	language: Language = "en"


class ChatPayload(BaseModel):
	history: List[ChatMessage] = Field(default_factory=list)
	message: str
	language: Language = "en"


# ---- Output schemas handed to the provider (OpenAPI subset used by Gemini) ----

SOLUTION_RESPONSE_SCHEMA: Dict[str, Any] = {
	"type": "OBJECT",
	"properties": {
		"status": {"type": "STRING", "enum": ["solved", "unsolved"]},
		"title": {"type": "STRING"},
		"classification": {
			"type": "STRING",
			"description": "The branch of mathematics the problem belongs to (e.g., Algebra, Calculus).",
		},
		"difficulty": {"type": "STRING", "enum": ["Easy", "Medium", "Hard", "Advanced"]},
		"difficultyRating": {"type": "NUMBER", "description": "A numerical rating from 1 to 10."},
		"difficultyJustification": {"type": "STRING", "description": "Justification for the difficulty rating."},
		"keyConcepts": {
			"type": "ARRAY",
			"items": {"type": "STRING"},
			"description": "An array of key mathematical concepts or theorems required.",
		},
		"reasoning": {"type": "STRING", "description": "A high-level overview of the solution approach."},
		"solution": {"type": "ARRAY", "items": {"type": "STRING"}, "nullable": True},
		"explanation": {"type": "STRING", "nullable": True},
		"alternativeMethods": {
			"type": "STRING",
			"nullable": True,
			"description": "A brief description of an alternative solution method.",
		},
		"commonPitfalls": {
			"type": "STRING",
			"nullable": True,
			"description": "A brief description of common mistakes.",
		},
	},
	"required": [
		"status",
		"title",
		"classification",
		"difficulty",
		"difficultyRating",
		"difficultyJustification",
		"keyConcepts",
		"reasoning",
	],
}

EXAMPLE_PROBLEMS_SCHEMA: Dict[str, Any] = {
	"type": "OBJECT",
	"properties": {
		"problems": {
			"type": "ARRAY",
			"items": {
				"type": "OBJECT",
				"properties": {
					"id": {"type": "STRING"},
					"problem": {"type": "STRING"},
				},
				"required": ["id", "problem"],
			},
		},
	},
	"required": ["problems"],
}

MATH_FACT_SCHEMA: Dict[str, Any] = {
	"type": "OBJECT",
	"properties": {
		"fact": {
			"type": "STRING",
			"description": "A surprising and fun math fact, explained simply.",
		},
	},
	"required": ["fact"],
}
