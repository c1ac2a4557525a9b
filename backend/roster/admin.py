from django.contrib import admin

from .models import SchoolClass, Student, Enrollment, Guardian, GuardianStudent


@admin.register(Guardian)
class GuardianAdmin(admin.ModelAdmin):
    list_display = ('last_name', 'first_name', 'tenant', 'line_display_name', 'is_active')
    list_filter = ('is_active',)
    search_fields = ('first_name', 'last_name', 'line_display_name')


for model in (SchoolClass, Student, Enrollment, GuardianStudent):
    admin.site.register(model)
