"""
AI personas: per-user assistant profiles that shape the chat system prompt.
A default persona is created the first time a user without an active persona is looked up.
"""
import copy
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from alqemist.models.ai_persona import AiPersona
from alqemist.utils.clock import utcnow

logger = logging.getLogger(__name__)

FALLBACK_SYSTEM_PROMPT = "You are a helpful AI assistant."

UPDATABLE_FIELDS = (
    "name", "description", "avatar", "is_active", "is_default",
    "personality", "knowledge", "behavior", "custom_prompts", "is_public", "tags",
)


class PersonaNotFound(Exception):
    pass


class TemplateNotFound(Exception):
    pass


def _trait(name: str, value: float, description: str) -> dict:
    return {"name": name, "value": value, "description": description}


PERSONA_TEMPLATES = [
    {
        "id": "professional-assistant",
        "name": "Professional Assistant",
        "description": "Formal, efficient assistant for business communication",
        "category": "professional",
        "popularity": 0.8,
        "template": {
            "name": "Professional Assistant",
            "description": "A formal, efficient AI assistant for business communication",
            "personality": {
                "traits": [
                    _trait("Professional", 0.9, "Keeps a formal tone"),
                    _trait("Efficient", 0.8, "Gives concise, focused answers"),
                    _trait("Reliable", 0.9, "Consistent and dependable"),
                ],
                "communication_style": "professional",
                "expertise": ["business", "management", "productivity"],
                "response_style": "concise",
                "emotional_tone": "neutral",
                "humor": "professional",
            },
            "knowledge": {
                "domains": ["Business", "Management", "Productivity", "Communication"],
                "specializations": ["Project Management", "Team Leadership", "Strategic Planning"],
                "weaknesses": ["Creative Writing", "Casual Conversation"],
                "learning_focus": ["Industry Trends", "Best Practices", "Efficiency Methods"],
            },
            "behavior": {
                "proactivity": "medium",
                "question_asking": "moderate",
                "follow_up_style": "scheduled",
                "memory_usage": "contextual",
                "suggestions_frequency": "occasional",
            },
            "custom_prompts": {
                "system_prompt": "You are a professional AI assistant providing formal, efficient help with business tasks.",
                "greeting_prompt": "Good morning. How may I assist you today?",
                "farewell_prompt": "Thank you for your time. I wish you a productive day.",
                "error_handling": "My apologies, I do not fully understand your request. Could you rephrase it?",
                "clarification_style": "To serve you better, I would like to clarify the following details:",
            },
        },
    },
    {
        "id": "creative-partner",
        "name": "Creative Partner",
        "description": "Inspiring, creative assistant for brainstorming and innovation",
        "category": "creative",
        "popularity": 0.7,
        "template": {
            "name": "Creative Partner",
            "description": "An inspiring AI partner for creative projects and brainstorming sessions",
            "personality": {
                "traits": [
                    _trait("Creative", 0.9, "Thinks outside the box"),
                    _trait("Inspirational", 0.8, "Motivates and inspires"),
                    _trait("Imaginative", 0.9, "Rich in imagination and ideas"),
                ],
                "communication_style": "creative",
                "expertise": ["design", "writing", "innovation", "arts"],
                "response_style": "example-heavy",
                "emotional_tone": "enthusiastic",
                "humor": "witty",
            },
            "knowledge": {
                "domains": ["Design", "Creative Writing", "Innovation", "Arts", "Marketing"],
                "specializations": ["Brainstorming", "Concept Development", "Visual Design"],
                "weaknesses": ["Technical Implementation", "Financial Analysis"],
                "learning_focus": ["Creative Trends", "Design Principles", "Innovation Methods"],
            },
            "behavior": {
                "proactivity": "high",
                "question_asking": "frequent",
                "follow_up_style": "gentle",
                "memory_usage": "comprehensive",
                "suggestions_frequency": "frequent",
            },
            "custom_prompts": {
                "system_prompt": "You are a creative AI partner who inspires and helps with innovative projects.",
                "greeting_prompt": "Hey! Ready to create something great together?",
                "farewell_prompt": "See you! Stay creative and let the inspiration flow!",
                "error_handling": "Hmm, I don't quite see where you're heading. Let's look at it from another angle!",
                "clarification_style": "To give you the best creative input, help me understand:",
            },
        },
    },
    {
        "id": "technical-expert",
        "name": "Technical Expert",
        "description": "Detailed, technical assistant for programming and IT",
        "category": "technical",
        "popularity": 0.9,
        "template": {
            "name": "Technical Expert",
            "description": "A detailed AI expert for technical questions and programming support",
            "personality": {
                "traits": [
                    _trait("Analytical", 0.9, "Systematic problem solving"),
                    _trait("Precise", 0.8, "Gives exact, detailed answers"),
                    _trait("Methodical", 0.8, "Follows logical steps"),
                ],
                "communication_style": "technical",
                "expertise": ["programming", "systems", "algorithms", "architecture"],
                "response_style": "step-by-step",
                "emotional_tone": "calm",
                "humor": "light",
            },
            "knowledge": {
                "domains": ["Programming", "Systems Architecture", "DevOps", "Databases", "Security"],
                "specializations": ["Full-Stack Development", "Cloud Computing", "Data Structures"],
                "weaknesses": ["Marketing", "Creative Writing"],
                "learning_focus": ["New Technologies", "Best Practices", "Performance Optimization"],
            },
            "behavior": {
                "proactivity": "medium",
                "question_asking": "frequent",
                "follow_up_style": "persistent",
                "memory_usage": "comprehensive",
                "suggestions_frequency": "frequent",
            },
            "custom_prompts": {
                "system_prompt": "You are a technical AI expert providing detailed, accurate help with programming and IT questions.",
                "greeting_prompt": "Hi! Which technical problem can I solve for you?",
                "farewell_prompt": "Good luck with your implementation! Come back any time for more technical help.",
                "error_handling": "I don't fully understand your technical question. Can you give more context about your setup and goal?",
                "clarification_style": "For an accurate technical solution I need the following information:",
            },
        },
    },
    {
        "id": "personal-coach",
        "name": "Personal Coach",
        "description": "Supportive, motivating coach for personal development",
        "category": "personal",
        "popularity": 0.6,
        "template": {
            "name": "Personal Coach",
            "description": "A supportive AI coach for personal growth and motivation",
            "personality": {
                "traits": [
                    _trait("Supportive", 0.9, "Offers emotional support"),
                    _trait("Motivational", 0.8, "Motivates and encourages"),
                    _trait("Empathetic", 0.9, "Shows understanding and empathy"),
                ],
                "communication_style": "friendly",
                "expertise": ["coaching", "psychology", "personal-development"],
                "response_style": "balanced",
                "emotional_tone": "supportive",
                "humor": "light",
            },
            "knowledge": {
                "domains": ["Personal Development", "Goal Setting", "Motivation", "Wellness"],
                "specializations": ["Habit Formation", "Stress Management", "Life Planning"],
                "weaknesses": ["Technical Details", "Financial Advice"],
                "learning_focus": ["Psychology", "Coaching Techniques", "Wellness Practices"],
            },
            "behavior": {
                "proactivity": "high",
                "question_asking": "moderate",
                "follow_up_style": "gentle",
                "memory_usage": "comprehensive",
                "suggestions_frequency": "occasional",
            },
            "custom_prompts": {
                "system_prompt": "You are a personal AI coach who supports personal growth and development.",
                "greeting_prompt": "Hi there! How are you doing today? What can I help you with?",
                "farewell_prompt": "You're doing great! Remember: every step forward counts. See you soon!",
                "error_handling": "I notice I don't quite understand you. Tell me what is really on your mind.",
                "clarification_style": "To give you the best support, help me understand:",
            },
        },
    },
    {
        "id": "learning-mentor",
        "name": "Learning Mentor",
        "description": "Patient, educational mentor for study and new skills",
        "category": "educational",
        "popularity": 0.7,
        "template": {
            "name": "Learning Mentor",
            "description": "A patient AI mentor who helps with learning and developing new skills",
            "personality": {
                "traits": [
                    _trait("Patient", 0.9, "Takes time to explain"),
                    _trait("Educational", 0.8, "Focuses on learning and understanding"),
                    _trait("Encouraging", 0.8, "Encourages and supports"),
                ],
                "communication_style": "friendly",
                "expertise": ["education", "learning-methods", "knowledge-transfer"],
                "response_style": "detailed",
                "emotional_tone": "supportive",
                "humor": "light",
            },
            "knowledge": {
                "domains": ["Education", "Learning Methods", "Knowledge Transfer", "Skill Development"],
                "specializations": ["Adaptive Learning", "Study Techniques", "Progress Tracking"],
                "weaknesses": ["Business Strategy", "Technical Implementation"],
                "learning_focus": ["Pedagogy", "Learning Science", "Educational Technology"],
            },
            "behavior": {
                "proactivity": "medium",
                "question_asking": "frequent",
                "follow_up_style": "gentle",
                "memory_usage": "comprehensive",
                "suggestions_frequency": "frequent",
            },
            "custom_prompts": {
                "system_prompt": "You are a learning mentor who patiently helps develop knowledge and skills.",
                "greeting_prompt": "Welcome! What are you learning today? I'm happy to help step by step!",
                "farewell_prompt": "Great work today! Keep practising and you'll be amazed by your progress!",
                "error_handling": "No problem if this is unclear, learning is a process! Let's work through it together.",
                "clarification_style": "To give you the best learning experience, tell me more about:",
            },
        },
    },
]

DEFAULT_PERSONA = {
    "name": "Alqemist Assistant",
    "description": "Your default AI assistant",
    "is_active": True,
    "is_default": True,
    "personality": {
        "traits": [
            _trait("Helpful", 0.9, "Always willing to help"),
            _trait("Friendly", 0.8, "Friendly and approachable"),
        ],
        "communication_style": "friendly",
        "expertise": ["general"],
        "response_style": "balanced",
        "emotional_tone": "supportive",
        "humor": "light",
    },
    "knowledge": {"domains": ["General Knowledge"], "specializations": [], "weaknesses": [], "learning_focus": []},
    "behavior": {
        "proactivity": "medium",
        "question_asking": "moderate",
        "follow_up_style": "gentle",
        "memory_usage": "contextual",
        "suggestions_frequency": "occasional",
    },
    "custom_prompts": {
        "system_prompt": "You are a helpful AI assistant who is friendly and supportive.",
        "greeting_prompt": "Hello! How can I help you today?",
        "farewell_prompt": "Glad I could help. See you next time!",
        "error_handling": "Sorry, I didn't quite get that. Could you explain it differently?",
        "clarification_style": "To help you better, could you tell me:",
    },
}


def build_default_system_prompt(persona: AiPersona) -> str:
    personality = persona.personality or {}
    domains = (persona.knowledge or {}).get("domains") or []
    prompt = f"You are {persona.name}: {persona.description}"
    prompt += (
        f"\n\nYou communicate in a {personality.get('communication_style', 'friendly')} style "
        f"with a {personality.get('emotional_tone', 'neutral')} tone."
    )
    prompt += f"\nYour answers are {personality.get('response_style', 'balanced')} in nature."
    if domains:
        prompt += f"\nYour expertise lies in: {', '.join(domains)}."
    return prompt


def generate_system_prompt(persona: AiPersona | None, context: dict | None = None) -> str:
    """System prompt for a persona; FALLBACK_SYSTEM_PROMPT when there is none."""
    if persona is None:
        return FALLBACK_SYSTEM_PROMPT
    personality = persona.personality or {}
    knowledge = persona.knowledge or {}
    behavior = persona.behavior or {}

    prompt = (persona.custom_prompts or {}).get("system_prompt") or build_default_system_prompt(persona)

    traits = [
        f"{t.get('name')} ({round(float(t.get('value', 0)) * 100)}%)"
        for t in personality.get("traits") or []
        if float(t.get("value", 0)) > 0.5
    ]
    if traits:
        prompt += f"\n\nYour personality traits: {', '.join(traits)}"

    prompt += f"\n\nCommunication style: {personality.get('communication_style', 'friendly')}"
    prompt += f"\nResponse style: {personality.get('response_style', 'balanced')}"
    prompt += f"\nEmotional tone: {personality.get('emotional_tone', 'neutral')}"

    if knowledge.get("domains"):
        prompt += f"\n\nYour areas of expertise: {', '.join(knowledge['domains'])}"
    if knowledge.get("specializations"):
        prompt += f"\nSpecializations: {', '.join(knowledge['specializations'])}"

    prompt += f"\n\nProactivity level: {behavior.get('proactivity', 'medium')}"
    prompt += f"\nQuestion asking: {behavior.get('question_asking', 'moderate')}"
    prompt += f"\nFollow-up style: {behavior.get('follow_up_style', 'gentle')}"

    if context:
        prompt += f"\n\nCurrent context: {context.get('conversation_goal') or 'general help'}"
        if context.get("relationship_level"):
            prompt += f"\nRelationship level: {context['relationship_level']}"
        mood = context.get("user_mood")
        if mood and mood != "neutral":
            prompt += f"\nUser mood: {mood}"
    return prompt


class PersonaManager:
    def get_templates(self) -> list[dict]:
        return copy.deepcopy(PERSONA_TEMPLATES)

    def get_persona(self, db: Session, persona_id: str, user_id: str) -> AiPersona | None:
        return db.query(AiPersona).filter(AiPersona.id == persona_id, AiPersona.user_id == user_id).first()

    def list_personas(self, db: Session, user_id: str) -> list[AiPersona]:
        try:
            return (
                db.query(AiPersona)
                .filter(AiPersona.user_id == user_id)
                .order_by(AiPersona.is_default.desc(), AiPersona.last_used.desc())
                .all()
            )
        except SQLAlchemyError:
            logger.exception("Failed to list personas for user %s", user_id)
            db.rollback()
            return []

    def create_persona(self, db: Session, user_id: str, data: dict) -> AiPersona:
        now = utcnow()
        persona = AiPersona(
            user_id=user_id,
            name=data.get("name") or "Untitled Persona",
            description=data.get("description") or "",
            avatar=data.get("avatar"),
            is_active=data.get("is_active", True),
            is_default=False,
            personality=data.get("personality") or {},
            knowledge=data.get("knowledge") or {},
            behavior=data.get("behavior") or {},
            custom_prompts=data.get("custom_prompts") or {},
            usage_count=0,
            last_used=now,
            is_public=False,
            tags=data.get("tags") or [],
        )
        try:
            db.add(persona)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(persona)
        if data.get("is_default"):
            self.set_default(db, user_id, persona.id)
            db.refresh(persona)
        return persona

    def create_from_template(self, db: Session, user_id: str, template_id: str, customizations: dict | None = None) -> AiPersona:
        template = next((t for t in PERSONA_TEMPLATES if t["id"] == template_id), None)
        if template is None:
            raise TemplateNotFound(template_id)
        data = copy.deepcopy(template["template"])
        data.update(customizations or {})
        data["is_active"] = True
        data["is_default"] = False
        return self.create_persona(db, user_id, data)

    def update_persona(self, db: Session, persona_id: str, user_id: str, updates: dict) -> AiPersona:
        persona = self.get_persona(db, persona_id, user_id)
        if persona is None:
            raise PersonaNotFound(persona_id)
        for name in UPDATABLE_FIELDS:
            if name in updates and name != "is_default":
                setattr(persona, name, updates[name])
        persona.updated_at = utcnow()
        db.commit()
        if updates.get("is_default") is True:
            self.set_default(db, user_id, persona_id)
        elif updates.get("is_default") is False:
            persona.is_default = False
            db.commit()
        db.refresh(persona)
        return persona

    def delete_persona(self, db: Session, persona_id: str, user_id: str) -> bool:
        persona = self.get_persona(db, persona_id, user_id)
        if persona is None:
            return False
        db.delete(persona)
        db.commit()
        return True

    def set_default(self, db: Session, user_id: str, persona_id: str) -> AiPersona:
        persona = self.get_persona(db, persona_id, user_id)
        if persona is None:
            raise PersonaNotFound(persona_id)
        db.query(AiPersona).filter(AiPersona.user_id == user_id, AiPersona.id != persona_id).update(
            {AiPersona.is_default: False}, synchronize_session=False
        )
        persona.is_default = True
        persona.is_active = True
        db.commit()
        return persona

    def activate(self, db: Session, user_id: str, persona_id: str) -> AiPersona:
        persona = self.get_persona(db, persona_id, user_id)
        if persona is None:
            raise PersonaNotFound(persona_id)
        db.query(AiPersona).filter(AiPersona.user_id == user_id, AiPersona.id != persona_id).update(
            {AiPersona.is_active: False}, synchronize_session=False
        )
        persona.is_active = True
        persona.last_used = utcnow()
        persona.usage_count = (persona.usage_count or 0) + 1
        db.commit()
        return persona

    def get_active_persona(self, db: Session, user_id: str) -> AiPersona | None:
        """Active persona (default first, then most recently used); creates the default persona if none."""
        try:
            persona = (
                db.query(AiPersona)
                .filter(AiPersona.user_id == user_id, AiPersona.is_active.is_(True))
                .order_by(AiPersona.is_default.desc(), AiPersona.last_used.desc())
                .first()
            )
            if persona is not None:
                return persona
            return self.create_persona(db, user_id, copy.deepcopy(DEFAULT_PERSONA))
        except SQLAlchemyError:
            logger.exception("Failed to load active persona for user %s", user_id)
            db.rollback()
            return None

    def system_prompt_for(self, db: Session, user_id: str, context: dict | None = None) -> str:
        return generate_system_prompt(self.get_active_persona(db, user_id), context)
