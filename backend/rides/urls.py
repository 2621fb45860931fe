from django.urls import path
from . import views

app_name = 'rides'

urlpatterns = [
    # Listing & creation
    path('', views.rides_collection, name='ride-list'),
    path('created/', views.created_rides, name='created-rides'),
    path('joined/', views.joined_rides, name='joined-rides'),
    path('<int:ride_id>/', views.ride_detail, name='ride-detail'),

    # Seats
    path('<int:ride_id>/join/', views.join_ride, name='join-ride'),
    path('<int:ride_id>/accept/', views.accept_ride, name='accept-ride'),
    path('<int:ride_id>/leave/', views.leave_ride, name='leave-ride'),
    path('<int:ride_id>/reject/', views.reject_ride, name='reject-ride'),
    path('<int:ride_id>/passengers/<int:passenger_id>/', views.remove_passenger, name='remove-passenger'),

    # Owner actions
    path('<int:ride_id>/cancel/', views.cancel_ride, name='cancel-ride'),
    path('<int:ride_id>/complete/', views.complete_ride, name='complete-ride'),
]
