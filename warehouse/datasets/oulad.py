"""
OULAD mart models.

Two facts over shared dimensions: assessment submissions (student x
assessment) and daily VLE activity (student x site x day).

OULAD records dates as day offsets from the start of a module
presentation. A presentation code is the year plus `B` (starts in
February) or `J` (starts in October), so `2013J` starts on 2013-10-01 and
day 5 of it is 2013-10-06.
"""

from sqlalchemy import case, func, select

from warehouse.database.sql import add_days, cast_to, concat, date_key
from warehouse.transformation.marts import DateDimension, MartContext, MartModel


def presentation_key(module, presentation):
    """`AAA-2013J`"""
    return concat(module, "-", presentation)


def presentation_start(presentation):
    """First day of a presentation as a date"""
    year = func.substr(presentation, 1, 4)
    month_day = case(
        (func.substr(presentation, 5, 1) == "B", "-02-01"),
        else_="-10-01",
    )
    return cast_to(concat(year, month_day), "date")


def dim_module(ctx: MartContext):
    courses = ctx.clean("courses")
    return select(
        courses.c.code_module.label("ModuleKey"),
        func.count().label("PresentationCount"),
    ).group_by(courses.c.code_module)


def dim_presentation(ctx: MartContext):
    courses = ctx.clean("courses")
    module = ctx.mart("DimModule")
    semester = case(
        (func.substr(courses.c.code_presentation, 5, 1) == "B", "February"),
        else_="October",
    )
    return select(
        presentation_key(courses.c.code_module, courses.c.code_presentation).label("PresentationKey"),
        module.c.ModuleKey,
        courses.c.code_presentation.label("PresentationCode"),
        presentation_start(courses.c.code_presentation).label("StartDate"),
        courses.c.length_days.label("LengthDays"),
        semester.label("Semester"),
    ).select_from(
        courses.join(module, module.c.ModuleKey == courses.c.code_module)
    )


def dim_student(ctx: MartContext):
    # A student can appear once per presentation; demographics are per student
    info = ctx.clean("student_info")
    return select(
        info.c.student_id.label("StudentKey"),
        func.min(info.c.gender).label("Gender"),
        func.min(info.c.region).label("Region"),
        func.min(info.c.highest_education).label("HighestEducation"),
        func.min(info.c.imd_band).label("ImdBand"),
        func.min(info.c.age_band).label("AgeBand"),
        func.min(info.c.disability).label("Disability"),
        func.count().label("PresentationCount"),
    ).group_by(info.c.student_id)


def _submissions(ctx: MartContext):
    """Assessment submissions with their presentation and calendar date key"""
    submission = ctx.clean("student_assessment")
    assessment = ctx.clean("assessments")
    presentation = ctx.mart("DimPresentation")
    return select(
        submission.c.student_id,
        submission.c.assessment_id,
        submission.c.submitted_day,
        submission.c.is_banked,
        submission.c.score,
        assessment.c.assessment_type,
        assessment.c.weight,
        presentation.c.PresentationKey,
        presentation.c.ModuleKey,
        date_key(add_days(presentation.c.StartDate, submission.c.submitted_day)).label("date_key"),
    ).select_from(
        submission
        .join(assessment, assessment.c.assessment_id == submission.c.assessment_id)
        .join(
            presentation,
            presentation.c.PresentationKey == presentation_key(
                assessment.c.code_module, assessment.c.code_presentation
            ),
        )
    ).subquery("submissions")


def _daily_clicks(ctx: MartContext):
    """VLE clicks per student, site and day with the calendar date key"""
    activity = ctx.clean("student_vle")
    presentation = ctx.mart("DimPresentation")
    daily = select(
        activity.c.code_module,
        activity.c.code_presentation,
        activity.c.student_id,
        activity.c.site_id,
        activity.c.day,
        func.sum(activity.c.sum_click).label("sum_clicks"),
        func.count().label("interaction_count"),
    ).group_by(
        activity.c.code_module,
        activity.c.code_presentation,
        activity.c.student_id,
        activity.c.site_id,
        activity.c.day,
    ).subquery("daily")

    return select(
        daily,
        presentation.c.PresentationKey,
        presentation.c.ModuleKey,
        date_key(add_days(presentation.c.StartDate, daily.c.day)).label("date_key"),
    ).select_from(
        daily.join(
            presentation,
            presentation.c.PresentationKey == presentation_key(
                daily.c.code_module, daily.c.code_presentation
            ),
        )
    ).subquery("daily_clicks")


def activity_dates(ctx: MartContext):
    submissions = _submissions(ctx)
    clicks = _daily_clicks(ctx)
    return [
        select(submissions.c.date_key).distinct(),
        select(clicks.c.date_key).distinct(),
    ]


def fact_assessment(ctx: MartContext):
    submissions = _submissions(ctx)
    student = ctx.mart("DimStudent")
    dates = ctx.mart("DimDate")
    return select(
        student.c.StudentKey,
        submissions.c.assessment_id.label("AssessmentKey"),
        submissions.c.PresentationKey,
        submissions.c.ModuleKey,
        dates.c.DateKey,
        submissions.c.assessment_type.label("AssessmentType"),
        submissions.c.weight.label("Weight"),
        submissions.c.score.label("Score"),
        submissions.c.is_banked.label("IsBanked"),
        submissions.c.submitted_day.label("SubmittedDay"),
    ).select_from(
        submissions
        .join(student, student.c.StudentKey == submissions.c.student_id)
        .join(dates, dates.c.DateKey == submissions.c.date_key)
    )


def fact_vle_interaction(ctx: MartContext):
    clicks = _daily_clicks(ctx)
    site = ctx.clean("vle")
    student = ctx.mart("DimStudent")
    dates = ctx.mart("DimDate")
    return select(
        student.c.StudentKey,
        clicks.c.site_id.label("SiteKey"),
        clicks.c.PresentationKey,
        clicks.c.ModuleKey,
        dates.c.DateKey,
        site.c.activity_type.label("ActivityType"),
        clicks.c.sum_clicks.label("SumClicks"),
        clicks.c.interaction_count.label("InteractionCount"),
    ).select_from(
        clicks
        .join(student, student.c.StudentKey == clicks.c.student_id)
        .join(dates, dates.c.DateKey == clicks.c.date_key)
        .outerjoin(site, site.c.site_id == clicks.c.site_id)
    )


# Dimensions before the facts that join them
MART_MODELS = [
    MartModel("DimModule", dim_module, "One row per module"),
    MartModel("DimPresentation", dim_presentation, "One row per module presentation"),
    MartModel("DimStudent", dim_student, "One row per student"),
    DateDimension(activity_dates),
    MartModel("FactAssessment", fact_assessment, "One row per student assessment submission"),
    MartModel("FactVLEInteraction", fact_vle_interaction, "Clicks per student, site and day"),
]
