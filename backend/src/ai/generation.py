import json

LESSON_PLAN_SYSTEM = (
    "You are an expert teacher. Create a detailed lesson plan. Use HTML formatting for the "
    "content (e.g., <h3>, <ul>, <li>, <p>, <strong>). Do not include <html> or <body> tags, "
    "just the content structure."
)

LESSON_REFINE_SYSTEM = (
    "You are an expert teacher's assistant. You will be given a lesson plan (which may be in "
    "HTML or Markdown) and an instruction to refine it. Return ONLY the refined content. Do not "
    "wrap it in markdown code fences unless explicitly asked. Return the raw content ready to be rendered."
)

LESSON_CHAT_SYSTEM = (
    "You are an expert lesson planner. Help the teacher create a comprehensive lesson plan. "
    "Be interactive and ask clarifying questions if needed. When provided with requirements, "
    "generate a structured lesson plan. If the teacher asks to modify it, output the full modified plan."
)

ASSESSMENT_SYSTEM = """You are an expert teacher. Create an assessment with questions and a grading rubric.
Return STRICT JSON with this schema:
{
  "questions": [
    {
      "question_text": "Question goes here",
      "question_type": "mcq" | "short_answer" | "long_answer",
      "options": ["Option A", "Option B", "Option C", "Option D"],
      "correct_answer": "Option A",
      "marks": 5
    }
  ],
  "rubric": [
    {"criteria": "Criteria Name", "points": 10, "description": "Detailed description for grading."}
  ]
}

RULES:
1. For 'Multiple Choice', 'MCQ' or 'Quiz' requests, 'question_type' MUST be 'mcq' and 'options' MUST hold 4 choices.
2. For 'Short Answer', 'Written' or 'Subjective' requests, use 'short_answer' or 'long_answer' and an empty 'options' list.
3. 'correct_answer' for an mcq must be the exact text of one of its options.
4. Assign 'marks' to every question. "rubric" is required."""

REFINE_ASSESSMENT_SYSTEM = """You are an expert teacher. Refine the given assessment questions based on the teacher's instruction.
Return STRICT JSON:
{
  "questions": [
    {
      "question_text": "Refined question text",
      "question_type": "mcq" | "short_answer" | "long_answer",
      "options": ["Option A", "Option B", "Option C", "Option D"],
      "correct_answer": "Option A",
      "marks": 5
    }
  ]
}
Use the keys "question_text", "question_type" and "marks" exactly; never "text", "type" or "points"."""


def generate_lesson_plan(gateway, grade, subject, topic, additional_prompt=None):
    """Generate an HTML lesson plan fragment."""
    prompt = f'Create a lesson plan for Grade {grade} {subject} on the topic "{topic}". {additional_prompt or ""}'
    return gateway.complete(LESSON_PLAN_SYSTEM, prompt.strip())


def refine_lesson(gateway, content, instruction):
    """Rewrite an existing lesson plan; the original is kept if the model returns nothing."""
    reply = gateway.complete(LESSON_REFINE_SYSTEM, f"Original Content:\n{content}\n\nInstruction: {instruction}")
    return reply or content


def lesson_chat(gateway, messages):
    """Continue a multi-turn lesson-planning conversation."""
    history = [
        {"role": m.get("role", "user"), "content": m.get("content", "")}
        for m in messages
        if m.get("role") in ("user", "assistant")
    ]
    return gateway.complete(LESSON_CHAT_SYSTEM, history=history)


def generate_assessment(gateway, grade, subject, topic, assessment_type, count):
    """Generate questions plus rubric; {} when the model's JSON is unusable."""
    prompt = f'Create a {assessment_type} assessment with {count} questions for Grade {grade} {subject} on "{topic}".'
    return gateway.complete_json(ASSESSMENT_SYSTEM, prompt)


def refine_assessment(gateway, questions, instruction, grade, subject, topic):
    prompt = (
        f"Context: Grade {grade} {subject}, Topic: {topic}.\n\n"
        f"Current Questions: {json.dumps(questions)}\n\n"
        f"Instruction: {instruction}"
    )
    return gateway.complete_json(REFINE_ASSESSMENT_SYSTEM, prompt)


def tutor_reply(gateway, message, grade, subject):
    """One tutoring turn for a student."""
    system = f"You are a helpful tutor for a Grade {grade} student studying {subject}."
    return gateway.complete(system, message)
