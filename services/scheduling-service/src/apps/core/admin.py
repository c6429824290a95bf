from django.contrib import admin
from .models import (
    Booking, RecurringSchedule, RecurrenceException, StaffAvailability,
    WaitlistEntry, Member, Service, Resource, Location,
)


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ['id', 'service_id', 'user_id', 'status', 'start_time', 'end_time']
    list_filter = ['status', 'booking_type']


@admin.register(RecurringSchedule)
class RecurringScheduleAdmin(admin.ModelAdmin):
    list_display = ['id', 'service_id', 'frequency', 'interval', 'dtstart', 'is_active']
    list_filter = ['frequency', 'is_active']


@admin.register(RecurrenceException)
class RecurrenceExceptionAdmin(admin.ModelAdmin):
    list_display = ['id', 'schedule', 'original_date_time', 'exception_type']


@admin.register(StaffAvailability)
class StaffAvailabilityAdmin(admin.ModelAdmin):
    list_display = ['id', 'user_id', 'day_of_week', 'specific_date', 'start_time', 'end_time']


@admin.register(WaitlistEntry)
class WaitlistEntryAdmin(admin.ModelAdmin):
    list_display = ['id', 'service_id', 'user_id', 'position', 'is_active']


admin.site.register([Member, Service, Resource, Location])
