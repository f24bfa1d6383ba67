from __future__ import annotations

SYSTEM_PROMPT = (
    "You are an expert recruiter analysing how well a resume fits a job posting. "
    "Reply ONLY with valid JSON, no surrounding text. Be specific and detailed."
)

HEADLINES_PROMPT = """
Compare the JOB TITLE of the posting with the POSITION TITLES held in the resume.

RESUME:
{resume_text}

JOB POSTING:
{job_text}

Your task:
1. Identify the main title of the posting
2. List every position title from the candidate's resume
3. Score how well the titles match
4. Name concrete mismatches
5. Give recommendations

Consider seniority level, industry terminology, closeness of role function and
career progression visible in the titles. Look at titles only.

Return strict JSON with keys:
- jobTitle: string
- candidateTitles: string[]
- matchScore: number (0..100)
- explanation: string
- problems: string[]
- recommendations: string[]
""".strip()

SKILLS_PROMPT = """
Compare the SKILLS requested by the job posting with the skills shown in the resume.

RESUME:
{resume_text}

JOB POSTING:
{job_text}

Your task:
1. List skills explicitly requested by the posting
2. List skills present in the resume
3. Identify matching skills
4. Identify missing skills (requested but not found)
5. Identify additional skills (present but not requested)
6. Explain the gaps
7. Recommend how to close them

Focus on professional and technical skills: required versus nice-to-have,
expected proficiency, and technology stack fit.

Return strict JSON with keys:
- requestedSkills: string[]
- candidateSkills: string[]
- matchingSkills: string[]
- missingSkills: string[]
- additionalSkills: string[]
- matchScore: number (0..100)
- explanation: string
- problems: string[]
- recommendations: string[]
""".strip()

EXPERIENCE_PROMPT = """
Compare the WORK EXPERIENCE in the resume with what the job posting requires,
including seniority.

RESUME:
{resume_text}

JOB POSTING:
{job_text}

Your task:
1. Summarise what the candidate has done before
2. Summarise what the role requires
3. Score the match by quantity and quality of experience
4. Rate seniority as under-qualified, perfect-match or over-qualified
5. Explain matches and gaps
6. Recommend how to close the gaps

Consider years of relevant experience, scope of responsibility, industry relevance,
impact of achievements, leadership and career growth.

Return strict JSON with keys:
- candidateExperience: string[]
- jobRequirements: string[]
- experienceMatch: number (0..100)
- seniorityMatch: "under-qualified" | "perfect-match" | "over-qualified"
- seniorityExplanation: string
- quantityMatch: number (0..100)
- quantityExplanation: string
- explanation: string
- problems: string[]
- recommendations: string[]
""".strip()

CONDITIONS_PROMPT = """
Assess compatibility of the WORKING CONDITIONS between the resume and the job posting.

RESUME:
{resume_text}

JOB POSTING:
{job_text}

Extract and compare:
1. Job location versus candidate location
2. Salary range versus candidate expectation (if mentioned)
3. Schedule versus candidate preference
4. Work format (remote / hybrid / office) versus candidate preference

Return strict JSON with keys:
- location: {{jobLocation: string, candidateLocation: string, compatible: boolean, explanation: string}}
- salary: {{jobSalary: string, candidateExpectation: string, compatible: boolean, explanation: string}}
- schedule: {{jobSchedule: string, candidatePreference: string, compatible: boolean, explanation: string}}
- workFormat: {{jobFormat: string, candidatePreference: string, compatible: boolean, explanation: string}}
- overallScore: number (0..100)
- explanation: string
- problems: string[]
- recommendations: string[]
""".strip()

ANALYSIS_PROMPTS = {
    "headlines": HEADLINES_PROMPT,
    "skills": SKILLS_PROMPT,
    "experience": EXPERIENCE_PROMPT,
    "conditions": CONDITIONS_PROMPT,
}
