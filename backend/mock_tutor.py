"""
Deterministic tutor content used when no LLM is configured or the LLM fails.

Every function here is pure: the same inputs always give the same text, so
responses can be cached and tested.
"""

from typing import Any, Dict, List, Optional
import re

LEARNING_STYLES = ("visual", "auditory", "kinesthetic", "reading")

EXPLANATIONS: Dict[str, Dict[str, str]] = {
    "algebra": {
        "visual": "Algebra is like a balance scale where you solve for unknown values such as x or y. "
                  "Picture both sides of the equation on the scale: whatever you add or remove on one "
                  "side has to happen on the other so it stays level.",
        "auditory": "Algebra is about equations with unknown values. Say the rule out loud: what you do "
                    "to one side, you do to the other, and the unknown slowly reveals itself.",
        "kinesthetic": "Algebra is like building with blocks where some blocks are mystery boxes. Move "
                       "pieces from one side to the other, keeping both sides equal, until the mystery "
                       "box stands alone.",
        "reading": "Algebra is the branch of mathematics that uses letters and symbols to represent "
                   "numbers in formulas and equations, and that studies the rules for solving for "
                   "those unknown quantities.",
    },
    "fractions": {
        "visual": "Fractions are parts of a whole, like slices of a pizza. Cut it into 8 slices and eat 3, "
                  "and you have eaten 3/8: the bottom number counts all slices, the top the ones you have.",
        "auditory": "Say a fraction as 'parts out of a whole': three-fourths means three parts out of "
                    "four equal parts.",
        "kinesthetic": "Fold a sheet of paper into four equal parts and shade three of them. What you "
                       "shaded is three-fourths of the sheet.",
        "reading": "A fraction represents part of a whole, written as a numerator over a denominator "
                   "separated by a fraction bar.",
    },
    "photosynthesis": {
        "visual": "Photosynthesis is a solar-powered food factory inside leaves. Chloroplasts use "
                  "sunlight, water and carbon dioxide to make glucose and release oxygen.",
        "auditory": "Photosynthesis follows a rhythm: plants breathe in carbon dioxide, drink water "
                    "through their roots, catch sunlight, and breathe out oxygen while making food.",
        "kinesthetic": "Think of photosynthesis as cooking: gather the ingredients (carbon dioxide, "
                       "water, sunlight), mix them in the chloroplast kitchen, and out comes glucose "
                       "with oxygen as steam.",
        "reading": "Photosynthesis is the process by which plants convert light energy into chemical "
                   "energy stored in glucose, using carbon dioxide and water and releasing oxygen.",
    },
    "gravity": {
        "visual": "Gravity is an invisible pull between masses. Picture Earth as a huge magnet for "
                  "everything with mass: the bigger the mass, the stronger the pull.",
        "auditory": "Gravity makes objects fall towards each other. Near Earth, a falling object gains "
                    "about 9.8 metres per second of speed every second.",
        "kinesthetic": "Drop a ball, jump, or do a push-up: what you feel pulling you down is Earth's "
                       "gravity acting on your mass.",
        "reading": "Gravity is a fundamental force that attracts objects with mass to one another. On "
                   "Earth it gives objects weight and makes them fall towards the ground.",
    },
    "machine learning": {
        "visual": "Machine learning is like training a digital brain with thousands of examples, the way "
                  "you learn to recognise faces by seeing many of them.",
        "auditory": "Machine learning algorithms 'listen' to patterns in data and learn to predict, "
                    "much like you learned words by hearing them again and again.",
        "kinesthetic": "Teach a computer by practice: feed it examples, let it find patterns, then test "
                       "it on problems it has not seen.",
        "reading": "Machine learning is a method of data analysis that builds models automatically, so "
                   "computers learn from data without being explicitly programmed for every task.",
    },
}

DIFFICULTY_CONTEXT = {
    "beginner": "starting with the basics and building a foundation",
    "intermediate": "connecting key concepts and exploring practical applications",
    "advanced": "analyzing complex relationships and advanced applications",
}

STYLE_APPROACH = {
    "visual": "using diagrams, charts, and visual representations",
    "auditory": "through spoken explanations, discussion, and verbal reasoning",
    "kinesthetic": "with hands-on activities and practical examples",
    "reading": "through detailed written explanations and structured notes",
}

QUESTION_BANKS: Dict[str, Dict[str, List[Dict[str, Any]]]] = {
    "algebra": {
        "beginner": [
            {
                "question": "If x + 5 = 12, what is the value of x?",
                "options": ["5", "7", "12", "17"],
                "correct_answer": 1,
                "explanation": "Subtract 5 from both sides: x = 12 - 5 = 7.",
            },
            {
                "question": "What is the value of 3x when x = 4?",
                "options": ["7", "12", "15", "21"],
                "correct_answer": 1,
                "explanation": "Substitute x = 4 into 3x: 3 × 4 = 12.",
            },
        ],
        "intermediate": [
            {
                "question": "Solve for y: 2y - 8 = 14",
                "options": ["3", "6", "11", "22"],
                "correct_answer": 2,
                "explanation": "Add 8 to both sides to get 2y = 22, then divide by 2: y = 11.",
            },
        ],
    },
    "geometry": {
        "beginner": [
            {
                "question": "How many sides does a triangle have?",
                "options": ["2", "3", "4", "5"],
                "correct_answer": 1,
                "explanation": "A triangle has exactly 3 sides and 3 angles.",
            },
        ],
    },
    "photosynthesis": {
        "beginner": [
            {
                "question": "What do plants need for photosynthesis?",
                "options": ["Only water", "Only sunlight", "Sunlight, water, and carbon dioxide", "Only carbon dioxide"],
                "correct_answer": 2,
                "explanation": "Photosynthesis needs sunlight for energy, water from the roots and carbon dioxide from the air.",
            },
        ],
    },
    "python": {
        "beginner": [
            {
                "question": "What does print() do in Python?",
                "options": ["Creates a variable", "Writes output to the console", "Starts a loop", "Defines a function"],
                "correct_answer": 1,
                "explanation": "print() writes its arguments to standard output.",
            },
        ],
    },
}

DIFFICULTY_DESCRIPTORS = {
    "beginner": "basic",
    "intermediate": "important",
    "advanced": "complex",
}

SUBJECT_KEYWORDS = {
    "math": ["math", "algebra", "geometry", "calculus", "equation", "fraction", "number", "solve", "calculate"],
    "science": ["science", "biology", "chemistry", "physics", "photosynthesis", "gravity", "molecule", "atom"],
    "programming": ["programming", "code", "javascript", "python", "html", "css", "function", "variable"],
    "language": ["english", "grammar", "writing", "essay", "literature", "reading", "vocabulary"],
}

STUDY_TIPS = {
    "visual": "Create mind maps, diagrams, and visual summaries. Use colours and charts to organise information.",
    "auditory": "Read aloud, discuss concepts with others, and use rhythm to remember information.",
    "kinesthetic": "Take movement breaks, use hands-on activities, and study in different places.",
    "reading": "Take detailed notes, create outlines, and rewrite concepts in your own words.",
}


def _normalize_style(learning_style: Optional[str]) -> str:
    return learning_style if learning_style in LEARNING_STYLES else "visual"


def _letters(text: str) -> str:
    return re.sub(r"[^a-z]", "", text.lower())


def explanation(topic: str, difficulty: str = "intermediate", learning_style: str = "visual") -> str:
    style = _normalize_style(learning_style)
    lower_topic = topic.lower().strip()

    match = EXPLANATIONS.get(lower_topic)
    if match is None:
        compact = _letters(topic)
        for key, value in EXPLANATIONS.items():
            if key in lower_topic or (compact and _letters(key) in compact):
                match = value
                break

    if match is not None:
        return match[style]

    context = DIFFICULTY_CONTEXT.get(difficulty, DIFFICULTY_CONTEXT["intermediate"])
    approach = STYLE_APPROACH[style]
    return (
        f"Let me explain {topic} by {context}, {approach}.\n\n"
        f"At the {difficulty} level, focus on these aspects of {topic}:\n"
        f"1. Core definition: what {topic} is and why it matters\n"
        f"2. Real-world applications: where {topic} shows up in practice\n"
        f"3. Problem solving: how to apply {topic} to new problems\n"
        f"4. Connections: how {topic} relates to what you already know\n\n"
        f"As a {style} learner, work through {topic} {approach}."
    )


def generic_question(topic: str, difficulty: str, number: int) -> Dict[str, Any]:
    descriptor = DIFFICULTY_DESCRIPTORS.get(difficulty, "important")
    return {
        "question": f"What {descriptor} idea should you focus on when studying {topic}? (Question {number})",
        "options": [
            "Surface-level memorization",
            "Deep understanding and application",
            "Avoiding challenging aspects",
            "Focusing only on easy parts",
        ],
        "correct_answer": 1,
        "explanation": f"Deep understanding and practical application are key to mastering {topic} at the {difficulty} level.",
    }


def practice_questions(topic: str, count: int = 5, difficulty: str = "intermediate") -> List[Dict[str, Any]]:
    """Return exactly ``count`` questions, cycling through the bank when it is short."""
    compact = _letters(topic)
    question_set: List[Dict[str, Any]] = []
    for key, bank in QUESTION_BANKS.items():
        if key in compact or (compact and compact in key):
            question_set = bank.get(difficulty) or bank.get("beginner", [])
            break

    selected = []
    for i in range(count):
        if not question_set:
            selected.append(generic_question(topic, difficulty, i + 1))
            continue
        question = dict(question_set[i % len(question_set)])
        question["options"] = list(question["options"])
        if i >= len(question_set):
            question["question"] = f"{question['question']} (Question {i + 1})"
        selected.append(question)
    return selected


def learning_path(subject: str, current_level: str, goals: str, timeframe: str) -> Dict[str, Any]:
    return {
        "title": f"{subject} Learning Path",
        "description": f"Personalized learning path for a {current_level} level student",
        "goals": goals,
        "modules": [
            {
                "title": f"{subject} Fundamentals",
                "duration": "2 weeks",
                "topics": ["Basic concepts", "Key principles", "Foundation skills"],
                "resources": ["Interactive tutorials", "Practice exercises", "Video lessons"],
            },
            {
                "title": f"Intermediate {subject}",
                "duration": "3 weeks",
                "topics": ["Advanced concepts", "Practical applications", "Problem solving"],
                "resources": ["Hands-on projects", "Case studies", "Peer discussions"],
            },
            {
                "title": f"Advanced {subject}",
                "duration": "2 weeks",
                "topics": ["Expert techniques", "Real-world applications", "Innovation"],
                "resources": ["Capstone project", "Research papers", "Expert interviews"],
            },
        ],
        "total_duration": timeframe,
        "estimated_hours": 40,
    }


def detect_subject(message: str) -> Optional[str]:
    lower = message.lower()
    for subject, keywords in SUBJECT_KEYWORDS.items():
        if any(keyword in lower for keyword in keywords):
            return subject
    return None


def _has_word(text: str, *words: str) -> bool:
    return any(re.search(rf"\b{re.escape(word)}\b", text) for word in words)


def chat_response(message: str, learning_style: str = "visual", context: Optional[List[Dict[str, Any]]] = None) -> str:
    style = _normalize_style(learning_style)
    lower = message.lower()
    subject = detect_subject(message)
    topic_hint = f" with {subject}" if subject else ""

    if _has_word(lower, "help", "how"):
        return (
            "I'm here to help you learn! I can explain concepts in a way that suits "
            f"{style} learners, generate practice questions, suggest study strategies, "
            f"and guide you through homework step by step. What would you like help{topic_hint} today?"
        )

    if _has_word(lower, "explain") or "what is" in lower or "tell me about" in lower:
        return (
            f"Happy to explain! As a {style} learner you'll get the most out of it "
            f"{STYLE_APPROACH[style]}. Which part{' of this ' + subject + ' topic' if subject else ''} "
            "should we start with: the definition, how it works step by step, or real-world examples?"
        )

    if _has_word(lower, "practice", "quiz", "test", "questions"):
        return (
            f"Practice is the fastest way to master {subject or 'a topic'}. Use the Practice feature "
            "to generate multiple-choice questions, or tell me the exact topic and difficulty you want."
        )

    if _has_word(lower, "study", "learn"):
        return (
            f"Study tips for {style} learners: {STUDY_TIPS[style]} "
            "Start with the core ideas, practise regularly, and test yourself often."
        )

    if _has_word(lower, "homework", "assignment"):
        return (
            f"Let's work through your {subject + ' ' if subject else ''}homework together. Share the "
            "problem and I'll help you break it into steps, without just giving away the answer."
        )

    if _has_word(lower, "hello", "hi", "hey"):
        return (
            f"Hello! I'm your AI tutor. As a {style} learner, I'll tailor my explanations "
            "to your learning style. What would you like to explore today?"
        )

    response = f'I understand you\'re asking about "{message}". '
    if subject:
        response += f"This seems related to {subject}. "
    if context:
        response += "Building on what we discussed, "
    response += (
        "could you tell me whether you want an explanation, help with a specific problem, "
        "practice questions, or study strategies?"
    )
    return response
